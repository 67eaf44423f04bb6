"""Prompt Keeper Meta information.
   Prompt Keeper manages user accounts, sessions and encrypted API keys
   for the prompt builder.
"""
__title__ = 'prompt_keeper'
__description__ = (
   'Prompt Keeper manages user accounts, sessions and encrypted '
   'API keys for the prompt builder.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2026 Prompt Keeper contributors'
__author__ = 'Prompt Keeper contributors'
__license__ = 'Apache-2.0'
