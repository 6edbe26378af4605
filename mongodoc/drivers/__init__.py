""" Storage drivers: where the documents actually live """

from .base import StorageDriver, FindOptions
from .memory import MemoryDriver
from .sa import SqlAlchemyDriver
