"""
GSSMediator Login Configuration

Login module configuration lookups and the decorator that binds the
ticket cache path into Kerberos login module options.
"""

from gssmediator.login.configuration import (
    ConfigurationDecorator,
    LoginConfiguration,
    LoginModuleEntry,
    StaticLoginConfiguration,
    get_configuration,
    set_configuration,
)

__all__ = [
    "ConfigurationDecorator",
    "LoginConfiguration",
    "LoginModuleEntry",
    "StaticLoginConfiguration",
    "get_configuration",
    "set_configuration",
]
