import logging

logger = logging.getLogger("simpleldap")
