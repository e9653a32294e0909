"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    sequence_num INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT UNIQUE NOT NULL,
    paper_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    user_id TEXT,
    event_type TEXT NOT NULL,
    payload TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_paper_id ON events(paper_id);
CREATE INDEX IF NOT EXISTS idx_events_event_type ON events(event_type);

CREATE TABLE IF NOT EXISTS papers (
    paper_id TEXT PRIMARY KEY,
    root_block_id TEXT NOT NULL,
    author_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_papers_author_id ON papers(author_id);

CREATE TABLE IF NOT EXISTS blocks (
    paper_id TEXT NOT NULL,
    block_id TEXT NOT NULL,
    parent_id TEXT,
    position INTEGER NOT NULL,
    type TEXT NOT NULL,
    title TEXT,
    summary TEXT NOT NULL DEFAULT '',
    intent TEXT NOT NULL DEFAULT '',
    content TEXT,
    updated_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (paper_id, block_id),
    FOREIGN KEY (paper_id) REFERENCES papers(paper_id)
);

CREATE INDEX IF NOT EXISTS idx_blocks_parent ON blocks(paper_id, parent_id, position);

CREATE TABLE IF NOT EXISTS paper_collaborators (
    paper_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (paper_id, user_id)
);

CREATE INDEX IF NOT EXISTS idx_paper_collaborators_user_id ON paper_collaborators(user_id);

CREATE TABLE IF NOT EXISTS annotations (
    annotation_id TEXT PRIMARY KEY,
    paper_id TEXT NOT NULL,
    block_id TEXT NOT NULL,
    kind TEXT NOT NULL,
    body TEXT NOT NULL,
    user_id TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_annotations_block ON annotations(paper_id, block_id);
"""
