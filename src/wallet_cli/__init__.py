"""wallet-cli — interactive command line session for a cryptocurrency wallet.

Drives a wallet engine and a hardware signing device through an
asynchronous session state machine with a strict layered architecture.
"""

from wallet_cli.version import __version__

__all__: list[str] = ["__version__"]
