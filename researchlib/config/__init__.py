"""
Configuration: SystemSettings (environment, secrets, endpoints) and
AdminPolicy (behavioral policy loaded from admin_policy.json).
"""
