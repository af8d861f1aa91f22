"""
Defines the database schema for recallcore using a SQL string constant.
This keeps the schema definition separate from the database connection and
operation logic.

Timestamps are stored as naive UTC values; db_utils converts them at the
boundary.
"""

DB_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS cards (
        id UUID PRIMARY KEY,
        owner_id VARCHAR NOT NULL,
        topic_id VARCHAR,
        front VARCHAR,
        back VARCHAR,
        difficulty DOUBLE NOT NULL,
        easiness_factor DOUBLE NOT NULL CHECK (easiness_factor >= 1.3),
        repetition_count INTEGER NOT NULL CHECK (repetition_count >= 0),
        mastery_level DOUBLE NOT NULL,
        last_retention DOUBLE,
        created_at TIMESTAMP NOT NULL,
        next_review_at TIMESTAMP NOT NULL,
        last_reviewed_at TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS reviews (
        id UUID PRIMARY KEY,
        owner_id VARCHAR NOT NULL,
        card_id UUID NOT NULL,
        outcome_rating INTEGER NOT NULL CHECK (outcome_rating >= 1 AND outcome_rating <= 5),
        retention_estimate DOUBLE NOT NULL,
        reviewed_at TIMESTAMP NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_cards_owner_id ON cards (owner_id);
    CREATE INDEX IF NOT EXISTS idx_reviews_owner_id ON reviews (owner_id);
    CREATE INDEX IF NOT EXISTS idx_reviews_card_id ON reviews (card_id);
"""

# Dependents first, so tables can be dropped in this order.
TABLES = ("reviews", "cards")
