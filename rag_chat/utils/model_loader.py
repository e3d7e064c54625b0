import os
import sys

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from rag_chat.exception.custom_exception import RagChatException
from rag_chat.logger import GLOBAL_LOGGER as log
from rag_chat.utils.config_loader import get_config


class ApiKeyManager:
    REQUIRED = ["GROQ_API_KEY", "GOOGLE_API_KEY"]

    def __init__(self):
        load_dotenv()
        self.keys = {}

        for k in self.REQUIRED:
            if val := os.getenv(k):
                self.keys[k] = val
                log.info("Loaded %s from env", k)
            else:
                log.error("Missing required API key: %s", k)

        if len(self.keys) != len(self.REQUIRED):
            raise RagChatException("Missing API Keys", sys)

    def get(self, key: str) -> str:
        return self.keys[key]


class ModelLoader:
    """
    Responsible for:
    - Loading the embedding model used for chunks and queries
    - Loading the chat LLM that answers a turn
    """

    def __init__(self, config: dict | None = None):
        self.api_key_mgr = ApiKeyManager()
        self.api_keys = self.api_key_mgr.keys

        self.config = config or get_config()
        log.info("YAML config loaded | keys=%s", list(self.config.keys()))

    def load_embeddings(self):
        """
        Load and return embedding model from Google Generative AI.
        """
        try:
            model_name = self.config["embedding_model"]["model_name"]
            log.info("Loading embedding model | model=%s", model_name)
            return GoogleGenerativeAIEmbeddings(
                model=model_name, google_api_key=self.api_keys.get("GOOGLE_API_KEY")
            )
        except Exception as e:
            log.error("Error loading embedding model | error=%s", str(e))
            raise RagChatException("Failed to load embedding model", e) from e

    def load_llm(self, role: str = "chat"):
        """
        Load and return the configured LLM model.
        Args:
            role: key under `llm` in config.yaml

        Returns:
            Configured LLM instance
        """
        if role not in self.config["llm"]:
            log.error("LLM role not found in config | role=%s", role)
            raise ValueError(f"LLM role '{role}' not found in config")

        llm_config = self.config["llm"][role]

        provider = llm_config["provider"]
        model = llm_config["model_name"]
        temp = llm_config.get("temperature", 0.7)
        max_t = llm_config.get("max_tokens")
        max_retries = llm_config.get("max_retries", 2)

        log.info("Loading LLM | role=%s | model=%s", role, model)

        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.api_keys.get("GOOGLE_API_KEY"),
                temperature=temp,
                max_output_tokens=max_t,
                max_retries=max_retries,
            )

        if provider == "groq":
            return ChatGroq(
                model=model,
                api_key=self.api_keys.get("GROQ_API_KEY"),
                temperature=temp,
                max_tokens=max_t,
                max_retries=max_retries,
            )

        raise ValueError(f"Unsupported provider {provider}")
