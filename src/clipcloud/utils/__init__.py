from clipcloud.utils.file_manager import FilePayloadStore

__all__ = ["FilePayloadStore"]
