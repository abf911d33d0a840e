from settings import settings
import psycopg

# Record ids follow the "<uid>", "<uid>_profile", "<uid>_location" naming.
# Relationships are plain text user ids (no foreign keys); owners are
# cleaned up explicitly by the services.
DDL = '''
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    full_name TEXT,
    email TEXT,
    is_subscribed BOOLEAN NOT NULL DEFAULT FALSE,
    last_broadcast_at TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_profiles (
    record_name TEXT PRIMARY KEY,
    user_id TEXT NOT NULL UNIQUE,
    name TEXT,
    age INTEGER,
    ethnicity TEXT,
    fields JSONB NOT NULL DEFAULT '{}',
    field_visibilities JSONB NOT NULL DEFAULT '{}',
    preferences JSONB NOT NULL DEFAULT '{}',
    broadcast_radius_m DOUBLE PRECISION,
    search_radius_m DOUBLE PRECISION,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS user_locations (
    record_name TEXT PRIMARY KEY,
    user_id TEXT NOT NULL UNIQUE,
    lat DOUBLE PRECISION NOT NULL,
    lon DOUBLE PRECISION NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS broadcasts (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    lat DOUBLE PRECISION NOT NULL,
    lon DOUBLE PRECISION NOT NULL,
    message TEXT,
    age INTEGER,
    ethnicity TEXT,
    expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_broadcasts_expires ON broadcasts (expires_at);
CREATE INDEX IF NOT EXISTS idx_broadcasts_user ON broadcasts (user_id);

CREATE TABLE IF NOT EXISTS likes (
    id BIGSERIAL PRIMARY KEY,
    from_user TEXT NOT NULL,
    to_user TEXT NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    UNIQUE (from_user, to_user)
);

CREATE INDEX IF NOT EXISTS idx_likes_to ON likes (to_user);

CREATE TABLE IF NOT EXISTS rejected_likes (
    id BIGSERIAL PRIMARY KEY,
    blocker TEXT NOT NULL,
    blocked_user TEXT NOT NULL,
    expires_at TIMESTAMP WITH TIME ZONE NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_rejected_pair ON rejected_likes (blocker, blocked_user);

CREATE TABLE IF NOT EXISTS messages (
    id BIGSERIAL PRIMARY KEY,
    chat_id TEXT NOT NULL,
    from_user TEXT NOT NULL,
    to_user TEXT NOT NULL,
    text TEXT NOT NULL,
    is_bot BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_messages_chat_ts ON messages (chat_id, created_at);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=5) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
