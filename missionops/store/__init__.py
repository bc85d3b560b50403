from .main import create_app
from .memory import MemoryStore, StoreError
from .mailer import Mailer
