from habit_tracker.app import serve

serve()
