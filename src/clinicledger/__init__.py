# ABOUTME: clinicledger package: settlement and balance reconciliation engine
# ABOUTME: Exports create_server function and version info

from clinicledger.server import create_server

__version__ = "0.1.0"
__all__ = ["create_server", "__version__"]
