"""Registration directory: the current set of notification targets."""

from eventrouter.registrations.directory import Directory, RegistrationDirectory, StaticRegistrationDirectory

__all__ = ["Directory", "RegistrationDirectory", "StaticRegistrationDirectory"]
