"""
Automatic moderation: banned words, display names, invites and links.
"""
