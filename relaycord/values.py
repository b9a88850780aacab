"""
Created by Epic at 12/2/20
"""
version = "0.1.0"

API_BASE = "https://discord.com/api/v8"
GATEWAY_VERSION = 8
USER_AGENT = f"DiscordBot (https://github.com/tag-epic/relaycord {version})"

# GUILDS | GUILD_MESSAGES | DIRECT_MESSAGES
DEFAULT_INTENTS = 1 | 512 | 4096

# Seconds
RECONNECT_DELAY = 5
CONNECT_RETRY_DELAY = 30
IDENTIFY_PERIOD = 6
CLEANUP_PERIOD = 60
DM_CHANNEL_TTL = 300
