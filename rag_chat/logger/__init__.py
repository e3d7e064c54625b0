from .custom_logger import CustomLogger

# one named logger shared by the api, db and pipeline modules
GLOBAL_LOGGER = CustomLogger("rag_chat").get_logger()

__all__ = ["CustomLogger", "GLOBAL_LOGGER"]
