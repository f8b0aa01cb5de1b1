"""Group-chat casino bot: coinflip, rock-paper-scissors and Dice Escalator."""

__version__ = "1.0.0"
__status__ = "production"
