# class_scheduling/crud/__init__.py

from .crud_class_session import class_session
