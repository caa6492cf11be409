"""
moderation — Server-side checks on user-submitted crime report images.

Sub-modules:
    image_check — sensitive-category rule that routes reports to human review
"""
