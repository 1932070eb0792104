"""Central configuration for paths, server settings and prompts."""

import os
from pathlib import Path

# Base directory for saved data; LAMACLI_DATA_DIR overrides it
DATA_DIR = Path(os.environ.get("LAMACLI_DATA_DIR", str(Path.home() / ".lamacli")))

# One JSON file per saved chat session
HISTORY_DIR = DATA_DIR / "chat_history"

# Ollama server; None lets the ollama client fall back to its own default
OLLAMA_HOST = os.environ.get("OLLAMA_HOST") or None

LOG_LEVEL = os.environ.get("LAMACLI_LOG_LEVEL", "WARNING").upper()

# Used when the server cannot tell us which models are installed
FALLBACK_MODEL = "llama3.2:3b"

# Context assembly
CONTEXT_CHAR_LIMIT = 10000

# Session titles
TITLE_MAX_CHARS = 50

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."

COMMAND_SYSTEM_PROMPTS = {
    "ask": (
        "You are a helpful assistant. Provide clear, accurate, and helpful "
        "responses to questions."
    ),
    "suggest": (
        "You are a helpful command-line assistant. When asked to suggest a command, "
        "provide concise, practical command-line solutions. Include brief "
        "explanations when helpful."
    ),
    "explain": (
        "You are a helpful technical assistant. When asked to explain a command, "
        "provide clear, detailed explanations of what the command does, its "
        "options, and usage examples."
    ),
}

WELCOME_MESSAGE = (
    "Welcome to LamaCLI!\n\n"
    "I'm ready to help you with your questions. You can:\n"
    "• Ask me anything about programming, writing, or general topics\n"
    "• Use /files and /attach to add files as context\n"
    "• Use /models and /model to switch AI models\n"
    "• Use /code to show code blocks from the last answer\n"
    "• Type /help for all commands, Ctrl+C stops a running answer\n\n"
    "What would you like to know?"
)

CHAT_TEMPLATES = {
    "Code Review": (
        "### Code Review Template\n"
        "Review the code provided below thoroughly, addressing the following aspects:\n"
        "1. **Readability**: Is the code easily understandable? Provide suggestions "
        "for improving readability if necessary.\n"
        "2. **Performance**: Identify any bottlenecks or optimizations that can be applied.\n"
        "3. **Best Practices**: Ensure the code adheres to language and industry best practices.\n"
        "4. **Errors and Bugs**: Highlight potential bugs or errors with recommendations for fixes.\n"
        "5. **Security**: Check for security vulnerabilities and suggest mitigations.\n\n"
        "Please provide detailed comments or annotations within the code:\n\n"
    ),
    "Documentation": (
        "### Documentation Template\n"
        "Generate comprehensive documentation for the following code or API, including:\n"
        "1. **Overview**: A brief description of the functionality and purpose.\n"
        "2. **Usage**: Include code snippets demonstrating how to effectively use the code/API.\n"
        "3. **Input Parameters**: List all parameters, including types and descriptions.\n"
        "4. **Return Values**: Document return types and their meanings.\n"
        "5. **Examples**: Provide example use cases.\n"
        "6. **Notes**: Any additional information or caveats.\n\n"
    ),
    "Debugging": (
        "### Debugging Template\n"
        "Help debug the code by diagnosing the issue described and suggesting solutions. Include:\n"
        "1. **Problem Description**: Elaborate on the encountered issue.\n"
        "2. **Expected Behavior**: Detail the expected outcome of the code.\n"
        "3. **Observed Behavior**: Describe what actually happens.\n"
        "4. **Error Messages**: Include any error messages or logs.\n"
        "5. **Analysis**: Provide an analysis of potential root causes.\n"
        "6. **Solutions**: Suggest fixes or alternative approaches.\n\n"
    ),
}
