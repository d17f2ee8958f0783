"""discord.py adapter: slash commands, interaction routing and party message rendering."""
