"""Retention domain - daily visit reminders for customers who are due back"""
