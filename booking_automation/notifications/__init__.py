"""Push notifications - transport, token registry and message copy"""
