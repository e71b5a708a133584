"""
Cogs package for StrikeGuard.

Contains command groups:
- automod: Message moderation and the !automod switch
- strikes: Strike lookup and manual warnings

Each cog is loaded by the bot at startup.
"""
