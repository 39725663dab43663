__app_name__ = "vayura-offline-sync"
__version__ = "0.3.0"
