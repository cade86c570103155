"""StudyMatch - periodic study-partner auto-matching"""

__version__ = "1.0.0"
