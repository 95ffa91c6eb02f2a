"""
HomeTasks — Entry Point.

`python main.py` starts the Telegram bot. Logging is configured by the
bot's main().
"""

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
