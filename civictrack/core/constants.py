"""
CivicTrack - Constants
Field limits and fixed values shared by validation and persistence.
"""

# Issue text limits (characters, after trimming)
TITLE_MIN_LENGTH = 10
TITLE_MAX_LENGTH = 500
DESCRIPTION_MIN_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 2000
ADDRESS_MAX_LENGTH = 500

# Moderation and workflow text limits
FLAG_REASON_MAX_LENGTH = 255
STATUS_COMMENT_MAX_LENGTH = 1000

# Reporter preferred radius bounds (km)
MIN_PREFERRED_RADIUS_KM = 1.0
MAX_PREFERRED_RADIUS_KM = 50.0

# Actor recorded on the first status event of an anonymous report
ANONYMOUS_ACTOR = "anonymous"
