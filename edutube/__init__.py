"""EduTube Quiz Bot: timed vocabulary quizzes for YouTube videos on Discord."""

__version__ = "0.1.0"
