"""
GTD Consolidator — Configuration
All secrets loaded from environment variables.
Copy .env.example → .env and fill in your values.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env before any os.getenv() calls in dataclass defaults
_ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(_ENV_PATH, override=True)

# Output modes
MODE_DOC_PLAIN = "doc_plain"  # batch, plain-text rendering
MODE_DOC_HTML = "doc_html"    # per-message, HTML -> Doc conversion
OUTPUT_MODES = (MODE_DOC_PLAIN, MODE_DOC_HTML)


@dataclass
class GoogleConfig:
    # OAuth2 credentials file (downloaded from Google Cloud Console)
    credentials_path: str = os.getenv(
        "GOOGLE_CREDENTIALS_PATH", str(Path(__file__).parent / "google_credentials.json")
    )
    # Token file (auto-generated after first OAuth2 flow)
    token_path: str = os.getenv(
        "GOOGLE_TOKEN_PATH", str(Path(__file__).parent / "google_token.json")
    )
    # Refreshed tokens go here (/tmp on read-only hosts)
    writable_state_dir: str = os.getenv("GOOGLE_WRITABLE_DIR", str(Path(__file__).parent))
    scopes: List[str] = field(default_factory=lambda: [
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/documents",
        "https://www.googleapis.com/auth/drive",
    ])
    # Retries for 429/5xx, handled by googleapiclient's execute()
    num_retries: int = int(os.getenv("GOOGLE_NUM_RETRIES", "3"))
    # Docs API write quota is 60/min per user (conservative)
    docs_writes_per_min: int = int(os.getenv("DOCS_WRITES_PER_MIN", "55"))


@dataclass
class ConsolidationConfig:
    label: str = os.getenv("CONSOLIDATE_LABEL", "GTD_LABEL")
    # Caps the Gmail scan (threads listed) per run
    max_per_run: int = int(os.getenv("CONSOLIDATE_MAX_PER_RUN", "200"))
    output_mode: str = os.getenv("CONSOLIDATE_OUTPUT_MODE", MODE_DOC_PLAIN)
    recent_ids_limit: int = int(os.getenv("CONSOLIDATE_RECENT_IDS_LIMIT", "200"))
    document_title: str = os.getenv("CONSOLIDATE_DOC_TITLE", "gtd_consolidated_doc")
    tmp_title_prefix: str = "gtd_tmp_html_"
    # Display timezone for the Date: line and log output
    timezone: str = os.getenv("CONSOLIDATE_TIMEZONE", "UTC")
    sample_subjects: int = 5

    @property
    def query(self) -> str:
        """Gmail search query for the configured label (spaces become dashes)."""
        return f"label:{self.label.strip().replace(' ', '-')}"


@dataclass
class PostgresConfig:
    host: str = os.getenv("POSTGRES_HOST", "localhost")
    port: int = int(os.getenv("POSTGRES_PORT", "5432"))
    database: str = os.getenv("POSTGRES_DB", "consolidator")
    user: str = os.getenv("POSTGRES_USER", "consolidator")
    password: str = os.getenv("POSTGRES_PASSWORD", "")
    sslmode: str = os.getenv("POSTGRES_SSLMODE", "prefer")

    @property
    def dsn_params(self) -> dict:
        """Return connection params dict for psycopg2."""
        params = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.user,
            "password": self.password,
        }
        if self.sslmode and self.sslmode != "disable":
            params["sslmode"] = self.sslmode
        return params


@dataclass
class StateConfig:
    # "file" (local JSON) or "postgres"
    backend: str = os.getenv("STATE_BACKEND", "file")
    file_path: str = os.getenv(
        "STATE_FILE_PATH", str(Path(__file__).parent / "consolidator_state.json")
    )
    table: str = "consolidation_state"
    # Key for pg_try_advisory_lock around a run
    advisory_lock_key: int = 72_101_337


@dataclass
class TriggerConfig:
    # Consolidation interval (seconds)
    consolidate_interval: int = int(os.getenv("CONSOLIDATE_INTERVAL", "600"))  # 10 minutes


@dataclass
class ConsolidatorConfig:
    google: GoogleConfig = field(default_factory=GoogleConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    state: StateConfig = field(default_factory=StateConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    triggers: TriggerConfig = field(default_factory=TriggerConfig)
    debug: bool = os.getenv("CONSOLIDATOR_DEBUG", "false").lower() == "true"


# Global config instance
config = ConsolidatorConfig()
