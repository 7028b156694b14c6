"""Startup script for container deployment."""
from habit_tracker.app import serve

if __name__ == "__main__":
    serve()
