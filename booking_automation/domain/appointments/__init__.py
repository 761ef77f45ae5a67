"""Appointments domain - lifecycle events and routing"""
