from .base import BaseStreamProtocol
from .mapi import MapiStreamProtocol
