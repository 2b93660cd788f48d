"""
Administration: batch generation and the admin API.
"""
