"""Bot entrypoint.

- Loads .env exactly once via core.config
- Auto-loads every extension in cogs/
- Global error handlers so one bad interaction never takes the bot down
"""

from core.config import GUILD_ID, ROOT, env  # loads .env once
from core.logging_setup import setup_logging

import discord
from discord.ext import commands

# ---------- Logging Setup ----------
log = setup_logging()

# ---------- Env & Token ----------
TOKEN = env("DISCORD_TOKEN")
if not TOKEN:
    log.critical("DISCORD_TOKEN not found in .env file – cannot start bot.")
    raise RuntimeError("DISCORD_TOKEN not found in .env file")

# ---------- Intents ----------
intents = discord.Intents.default()
intents.members = True      # display names + Top 10 role sync
intents.guilds = True

# ---------- Paths ----------
COGS_DIR = ROOT / "cogs"


# ---------- Bot Class ----------
class RaceMasterBot(commands.Bot):
    def __init__(self):
        super().__init__(
            command_prefix="!",
            intents=intents,
            application_id=None,  # optional, Discord will infer it
        )
        log.info("Bot instance created.")

    async def setup_hook(self):
        """
        Runs before the bot connects to Discord.
        Good place to load cogs and sync app commands.
        """
        log.info("Running setup_hook...")

        if not COGS_DIR.exists():
            log.warning("Cogs directory %s does not exist.", COGS_DIR.resolve())
        else:
            log.info("Searching for cogs in %s ...", COGS_DIR.resolve())

        for path in sorted(COGS_DIR.glob("*.py")):
            # Skip dunder/hidden files like __init__.py
            if path.name.startswith("_"):
                continue

            ext_name = f"cogs.{path.stem}"

            try:
                await self.load_extension(ext_name)
                log.info("✅ Loaded cog: %s", ext_name)
            except Exception as e:
                log.exception("❌ Failed to load cog: %s - %s", ext_name, e)

        # Guild sync is instant; global sync can take up to an hour to show up
        try:
            if GUILD_ID:
                guild = discord.Object(id=GUILD_ID)
                self.tree.copy_global_to(guild=guild)
                log.info("Syncing application (slash) commands to guild %s...", GUILD_ID)
                synced = await self.tree.sync(guild=guild)
            else:
                log.info("Syncing application (slash) commands globally...")
                synced = await self.tree.sync()
            log.info("Slash commands synced. Total commands: %d", len(synced))
        except Exception as e:
            log.exception("Error while syncing application commands: %s", e)

        log.info("setup_hook finished.")

    async def on_ready(self):
        """
        Called when the bot has connected and is ready.
        """
        log.info("Logged in as %s (ID: %s)", self.user, self.user.id)
        log.info("RaceMaster Bot is online and ready.")
        await self.change_presence(
            activity=discord.Game(name="Drag Racing | /pair")
        )


bot = RaceMasterBot()


# ---------- Global Error Handlers ----------

@bot.event
async def on_error(event_method, *args, **kwargs):
    """
    Catches errors in Discord events that aren't otherwise handled.
    """
    log.exception(f"Unhandled error in event '{event_method}'", exc_info=True)


@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: discord.app_commands.AppCommandError):
    """
    Global handler for slash command errors.
    """
    log.error(
        "App command error: cmd=%s user=%s guild=%s error=%r",
        getattr(interaction.command, "name", "Unknown"),
        interaction.user,
        interaction.guild,
        error,
    )

    if interaction.response.is_done():
        try:
            await interaction.followup.send(
                "❌ Something went wrong while running this command.",
                ephemeral=True,
            )
        except Exception:
            log.exception("Failed to send followup error message.")
    else:
        try:
            await interaction.response.send_message(
                "❌ Something went wrong while running this command.",
                ephemeral=True,
            )
        except Exception:
            log.exception("Failed to send initial error message.")


# ---------- Entry Point ----------
if __name__ == "__main__":
    log.info("Starting RaceMaster Bot...")
    try:
        bot.run(TOKEN, log_handler=None)
    except KeyboardInterrupt:
        log.warning("Bot interrupted with CTRL+C, shutting down...")
    except Exception as e:
        log.critical(f"Bot crashed with an unhandled exception: {e}", exc_info=True)
