"""
Created by Epic at 9/5/20

Instructions on using this example:
    - Create a discord server, app and bot (you can just follow the discord api instructions).
        - Full instructions can be found here - https://discordpy.readthedocs.io/en/latest/discord.html
    - Make sure the bot has message read and write permissions.
    - Copy the id, secret and token from the app and set them as environment variables and invite the bot to a server
        - Also explained in the article above
    - Run this script.
    - Write !test in the chat, or DM the bot.
"""

import relaycord
from os import environ as env
from logging import basicConfig, DEBUG

client = relaycord.Client(env["CLIENT_ID"], env["CLIENT_SECRET"], env["TOKEN"], debug=True)
basicConfig(level=DEBUG)  # Comment this out if you don't want to see what's going on behind the scenes


@client.listen("MESSAGE_CREATE")
async def on_message(client, shard, event, message):
    if message["content"].lower() != "!test":
        return
    if "guild_id" in message:
        await client.send_channel_message(message["guild_id"], message["channel_id"], "Hello world!")
    else:
        await client.send_person_message(message["author"]["id"], "Hello world!")


@client.listen("client.error")
def on_error(client, exception):
    print("Something broke:", repr(exception))

client.run()
