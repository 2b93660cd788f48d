"""
Phone channels: USSD and SMS webhooks, outbound SMS notifications.
"""
