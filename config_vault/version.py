"""Config Vault Meta information.
   Config Vault stores a module's configuration or credentials object
   into a per-user key-value store, optionally encrypted with a password.
"""
__title__ = 'config_vault'
__description__ = (
   'Config Vault stores a single configuration or credentials object '
   'into a per-user key-value store, optionally password-encrypted.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/config-vault'
