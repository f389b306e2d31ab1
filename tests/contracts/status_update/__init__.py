"""Status update service contracts"""
