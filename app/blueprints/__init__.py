"""
Change Order Workflow Service
Blueprint registry.
"""
