# PttCore - Push-to-Talk Dictation Core

"""
Synchronization and orchestration core for a push-to-talk dictation client.
Owns the capture lifecycle, the model download queue, and the command/event
bridge that keeps every attached surface consistent.
"""

__version__ = "0.1.0"
__app_name__ = "PttCore"
