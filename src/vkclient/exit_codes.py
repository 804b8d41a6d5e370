"""Numeric process exit codes used by the ``vkclient`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~vkclient.exceptions.VKClientError` subclass.
Shell wrappers can inspect the exit code to tell a captcha challenge from a
banned account without parsing stderr.

Example::

    $ vkclient call users.get -P user_ids=1
    $ echo $?
    5   # EXIT_CAPTCHA_REQUIRED -- the server asked for a captcha
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_API_ERROR = 3
"""The remote API answered with an error object."""

EXIT_MALFORMED_RESPONSE = 4
"""The remote API answered with something that is not JSON."""

EXIT_CAPTCHA_REQUIRED = 5
"""The remote API requires a captcha to be solved."""

EXIT_VALIDATION_REQUIRED = 6
"""The account needs validation (two-factor, phone confirmation, ban)."""

EXIT_REDIRECT_REQUIRED = 7
"""The user must be redirected to a URI to continue."""

EXIT_CONNECTION_ERROR = 8
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PLUGIN_ERROR = 10
"""A plugin failed to register, enable, or expose its capabilities."""
