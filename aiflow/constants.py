DEFAULT_MAX_ITERATIONS = 10
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."
FINAL_ANSWER_PROMPT = (
    "Please provide your final answer based on the information gathered so far."
)

DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULT_EMBEDDING_BATCH_SIZE = 50
DEFAULT_SEARCH_LIMIT = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.7

DEFAULT_CODE_MODEL = "gpt-4o"

WORKFLOWS_TABLE = "ai_workflows"
WORKFLOW_RUNS_TABLE = "ai_workflow_runs"
AGENTS_TABLE = "ai_agents"
MODELS_TABLE = "ai_models"
EMBEDDINGS_TABLE = "data_embeddings"
PACKAGES_TABLE = "reusable_packages"
