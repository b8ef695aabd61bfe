"""
MongoDB handle.

`db` is None unless both DATABASE_URL and DATABASE_NAME are set, so the
local snapshot backend can run without a database server.
"""

from pymongo import MongoClient

import config

client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]
