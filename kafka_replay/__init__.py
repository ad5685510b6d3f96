"""
kafka-replay - record messages from a Kafka partition to a binary file and
replay them back, optionally rate limited and in a loop.
"""

__version__ = "0.3.0"
