"""
lessonbook: weekly lesson scheduling and attendance credit for activity centers.
"""
