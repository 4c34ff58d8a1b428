"""ProjectTrack: academic project tracking for teachers and students."""

__version__ = "0.1.0"
