"""Stats domain - customer metrics and location aggregates"""
