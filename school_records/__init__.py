"""School Records API: attendance, homework, student and teacher records on MongoDB."""

__version__ = "0.1.0"
