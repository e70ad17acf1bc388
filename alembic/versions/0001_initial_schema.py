"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "assistants",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("first_message", sa.Text(), nullable=True),
        sa.Column("system_prompt", sa.Text(), nullable=False),
        sa.Column("voice_provider", sa.String(length=50), nullable=False),
        sa.Column("voice_id", sa.String(length=255), nullable=False),
        sa.Column("voice_settings", sa.JSON(), nullable=False),
        sa.Column("stt_provider", sa.String(length=50), nullable=False),
        sa.Column("stt_model", sa.String(length=100), nullable=True),
        sa.Column("stt_language", sa.String(length=10), nullable=True),
        sa.Column("model_provider", sa.String(length=50), nullable=False),
        sa.Column("model_name", sa.String(length=100), nullable=False),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("max_tokens", sa.Integer(), nullable=True),
        sa.Column("call_settings", sa.JSON(), nullable=False),
        sa.Column("interruptions_enabled", sa.Boolean(), nullable=False),
        sa.Column("background_denoising", sa.Boolean(), nullable=False),
        sa.Column("phone_enabled", sa.Boolean(), nullable=False),
        sa.Column("transfer_number", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_assistants_org_id", "assistants", ["org_id"])

    op.create_table(
        "phone_numbers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=True),
        sa.Column("phone_number", sa.String(length=20), nullable=False),
        sa.Column(
            "assistant_id",
            sa.String(length=36),
            sa.ForeignKey("assistants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", sa.String(length=50), nullable=False),
    )
    op.create_index("ix_phone_numbers_org_id", "phone_numbers", ["org_id"])
    op.create_index("ix_phone_numbers_phone_number", "phone_numbers", ["phone_number"], unique=True)
    op.create_index("ix_phone_numbers_assistant_id", "phone_numbers", ["assistant_id"])

    op.create_table(
        "calls",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=True),
        sa.Column(
            "assistant_id",
            sa.String(length=36),
            sa.ForeignKey("assistants.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("call_sid", sa.String(length=255), nullable=False),
        sa.Column("direction", sa.String(length=20), nullable=False),
        sa.Column("from_number", sa.String(length=20), nullable=True),
        sa.Column("to_number", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("answered_by", sa.String(length=50), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("answered_at", sa.DateTime(), nullable=True),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("recording_url", sa.String(length=500), nullable=True),
        sa.Column("recording_duration", sa.Integer(), nullable=True),
        sa.Column("cost", sa.Numeric(10, 4), nullable=True),
        sa.Column("end_reason", sa.String(length=100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
    )
    op.create_index("ix_calls_org_id", "calls", ["org_id"])
    op.create_index("ix_calls_assistant_id", "calls", ["assistant_id"])
    op.create_index("ix_calls_call_sid", "calls", ["call_sid"], unique=True)
    op.create_index("ix_calls_status", "calls", ["status"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=True),
        sa.Column(
            "assistant_id",
            sa.String(length=36),
            sa.ForeignKey("assistants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "call_id",
            sa.String(length=36),
            sa.ForeignKey("calls.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("session_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
    )
    op.create_index("ix_sessions_org_id", "sessions", ["org_id"])
    op.create_index("ix_sessions_assistant_id", "sessions", ["assistant_id"])
    op.create_index("ix_sessions_call_id", "sessions", ["call_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("audio_ref", sa.String(length=500), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_messages_session_id", "messages", ["session_id"])

    op.create_table(
        "voicemails",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("org_id", sa.String(length=36), nullable=False),
        sa.Column("call_sid", sa.String(length=255), nullable=True),
        sa.Column("from_number", sa.String(length=20), nullable=False),
        sa.Column("to_number", sa.String(length=20), nullable=False),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("recording_sid", sa.String(length=255), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("transcription", sa.Text(), nullable=True),
        sa.Column("transcription_status", sa.String(length=50), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_voicemails_org_id", "voicemails", ["org_id"])
    op.create_index("ix_voicemails_call_sid", "voicemails", ["call_sid"])
    op.create_index("ix_voicemails_recording_sid", "voicemails", ["recording_sid"])

    op.create_table(
        "call_transfers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("call_sid", sa.String(length=255), nullable=False),
        sa.Column("conference_sid", sa.String(length=255), nullable=True),
        sa.Column("transferred_to", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_call_transfers_call_sid", "call_transfers", ["call_sid"])
    op.create_index("ix_call_transfers_conference_sid", "call_transfers", ["conference_sid"])


def downgrade() -> None:
    op.drop_table("call_transfers")
    op.drop_table("voicemails")
    op.drop_table("messages")
    op.drop_table("sessions")
    op.drop_table("calls")
    op.drop_table("phone_numbers")
    op.drop_table("assistants")
