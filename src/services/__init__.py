"""
Long running services: refresh scheduling and process orchestration
"""
