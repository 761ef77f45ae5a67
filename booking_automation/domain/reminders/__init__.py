"""Reminders domain - "2 hours before" appointment reminders"""
