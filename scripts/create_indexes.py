import os

import psycopg2
from dotenv import load_dotenv

load_dotenv()

# Indexes for databases created before they were declared on the models
INDEX_COMMANDS = [
    "CREATE INDEX IF NOT EXISTS ix_sessions_user_id ON sessions (user_id);",
    "CREATE INDEX IF NOT EXISTS ix_sessions_school_id ON sessions (school_id);",
    "CREATE INDEX IF NOT EXISTS ix_sessions_status ON sessions (status);",
    "CREATE INDEX IF NOT EXISTS ix_sessions_user_id_check_in_time ON sessions (user_id, check_in_time);",
    "CREATE INDEX IF NOT EXISTS ix_sessions_status_check_in_time ON sessions (status, check_in_time);",
]


def main():
    conn = psycopg2.connect(
        dbname=os.getenv("DB_NAME"),
        user=os.getenv("DB_USER"),
        password=os.getenv("DB_PASSWORD"),
        host=os.getenv("DB_HOST"),
        port=os.getenv("DB_PORT", "5432"),
    )
    try:
        with conn.cursor() as cur:
            for cmd in INDEX_COMMANDS:
                print(f"Executing: {cmd}")
                cur.execute(cmd)
        conn.commit()
    finally:
        conn.close()

    print("Indexes created successfully!")


if __name__ == "__main__":
    main()
