# src/bot/commands/__init__.py

from .utils import start_command, help_command
from .ledger import (
    clear_command,
    delete_command,
    delete_selection_callback,
    edit_command,
    expire_delete_prompt,
    today_command,
    total_command,
)
from .plans import plan_command, subscribe_callback, subscribe_command

ALL_COMMANDS = {
    "start": start_command,
    "help": help_command,
    "total": total_command,
    "hoje": today_command,
    "apagar": delete_command,
    "editar": edit_command,
    "limpar": clear_command,
    "plano": plan_command,
    "assinar": subscribe_command,
}
