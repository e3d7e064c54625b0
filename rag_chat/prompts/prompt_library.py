from langchain_core.prompts import PromptTemplate

# Single-string prompt for a chat turn. The blocks are pre-rendered and may be empty.
augmented_chat_prompt = PromptTemplate.from_template(
    "{memory_block}"
    "{document_block}"
    "{files_block}\n\n"
    "User query: {query}\n\n"
    "Instructions:\n"
    "- Use the provided document context to answer the user's query when relevant\n"
    "- Reference specific information from the documents when applicable\n"
    "- If the query is about the uploaded files, use the extracted content to provide accurate answers\n"
    "- Maintain context from previous memories when relevant\n"
    "- Be helpful and conversational while staying accurate to the provided information"
)


# Central dictionary to register prompts
PROMPT_REGISTRY = {
    "augmented_chat": augmented_chat_prompt,
}
