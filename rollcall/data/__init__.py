from .database import AttendanceStore

__all__ = ['AttendanceStore']
