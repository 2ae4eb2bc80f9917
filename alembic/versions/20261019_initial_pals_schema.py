"""
initial schema: users, friends/requests/blocks, communities, discussions,
conversations/messages, letters, notifications, posts
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_initial"
down_revision: str | None = None
branch_labels = None
depends_on = None


user_gender = sa.Enum("male", "female", "other", name="user_gender")
community_gender = sa.Enum("all", "male", "female", "other", name="community_gender")
member_role = sa.Enum("admin", "member", "pending", name="community_member_role")
message_type = sa.Enum("text", "image", name="message_type")
letter_status = sa.Enum("scheduled", "delivered", name="letter_status")
notification_type = sa.Enum(
    "friend_request_sent",
    "friend_request_accepted",
    "friend_request_rejected",
    "friend_removed",
    "community_join_request",
    "post_reaction",
    "post_commented",
    "comment_replied",
    "discussion_thread_replied",
    "letter_scheduled",
    "gift_received",
    "conversation_deleted",
    "user_blocked",
    name="notification_type",
)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("photo_url", sa.String(), nullable=True),
        sa.Column("language_code", sa.String(8), nullable=True),
        sa.Column("allows_write_to_pm", sa.Boolean(), nullable=True),
        sa.Column("gender", user_gender, nullable=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"], unique=True)
    op.create_index("ix_users_username", "users", ["username"])
    op.create_index("ix_users_name", "users", ["name"])

    # --- friends / requests / blocks ---
    op.create_table(
        "friends",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_min", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_max", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_min", "user_max", name="uq_friend_pair"),
        sa.CheckConstraint("user_min < user_max", name="ck_friend_min_lt_max"),
    )
    op.create_index("ix_friends_id", "friends", ["id"])
    op.create_index("ix_friends_user_min_created", "friends", ["user_min", "created_at"])
    op.create_index("ix_friends_user_max_created", "friends", ["user_max", "created_at"])

    op.create_table(
        "friend_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("receiver_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_min", sa.Integer(), nullable=False),
        sa.Column("user_max", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(300), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_min", "user_max", name="uq_friend_requests_pair"),
        sa.CheckConstraint("sender_id <> receiver_id", name="ck_friend_requests_not_self"),
    )
    op.create_index("ix_friend_requests_id", "friend_requests", ["id"])
    op.create_index("ix_friend_requests_receiver_created", "friend_requests", ["receiver_id", "created_at"])
    op.create_index("ix_friend_requests_sender_created", "friend_requests", ["sender_id", "created_at"])

    op.create_table(
        "blocked_users",
        sa.Column("blocker_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("blocked_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("blocker_id", "blocked_id", name="pk_blocked_users"),
    )
    op.create_index("ix_blocked_users_blocked_id", "blocked_users", ["blocked_id"])

    # --- communities ---
    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(1000), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("language", sa.String(16), nullable=False),
        sa.Column("gender", community_gender, nullable=False, server_default=sa.text("'all'")),
        sa.Column("banner_ref", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_communities_id", "communities", ["id"])
    op.create_index("ix_communities_admin_created", "communities", ["admin_id", "created_at"])

    op.create_table(
        "community_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("community_id", sa.Integer(), sa.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", member_role, nullable=False),
        sa.Column("request_message", sa.String(300), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
    )
    op.create_index("ix_community_members_id", "community_members", ["id"])
    op.create_index("ix_community_members_community_id", "community_members", ["community_id"])
    op.create_index("ix_community_members_user_id", "community_members", ["user_id"])
    op.create_index("ix_community_members_community_role", "community_members", ["community_id", "role", "created_at"])
    op.create_index("ix_community_members_user_role", "community_members", ["user_id", "role", "created_at"])
    # не больше одного admin на сообщество
    op.create_index(
        "uq_community_members_one_admin",
        "community_members",
        ["community_id"],
        unique=True,
        postgresql_where=sa.text("role = 'admin'"),
        sqlite_where=sa.text("role = 'admin'"),
    )

    op.create_table(
        "discussions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("community_id", sa.Integer(), sa.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("image_ref", sa.String(512), nullable=True),
        sa.Column("replies_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_discussions_id", "discussions", ["id"])
    op.create_index("ix_discussions_user_id", "discussions", ["user_id"])
    op.create_index("ix_discussions_community_created", "discussions", ["community_id", "created_at"])

    op.create_table(
        "discussion_threads",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("discussion_id", sa.Integer(), sa.ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("content", sa.String(1000), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_discussion_threads_id", "discussion_threads", ["id"])
    op.create_index("ix_discussion_threads_user_id", "discussion_threads", ["user_id"])
    op.create_index("ix_discussion_threads_parent_id", "discussion_threads", ["parent_id"])
    op.create_index("ix_discussion_threads_discussion_created", "discussion_threads", ["discussion_id", "created_at"])

    # --- conversations / messages ---
    op.create_table(
        "conversations",
        sa.Column("group_id", sa.String(64), primary_key=True),
        sa.Column("user_min", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_max", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("last_message_id", sa.Integer(), nullable=True),
        sa.Column("last_message_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("last_message_preview", sa.String(120), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("user_min < user_max", name="ck_conversations_min_lt_max"),
    )
    op.create_index("ix_conversations_user_min_last", "conversations", ["user_min", "last_message_at"])
    op.create_index("ix_conversations_user_max_last", "conversations", ["user_max", "last_message_at"])

    op.create_table(
        "conversation_hidden",
        sa.Column("group_id", sa.String(64), sa.ForeignKey("conversations.group_id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cleared_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("group_id", "user_id", name="pk_conversation_hidden"),
    )
    op.create_index("ix_conversation_hidden_user_id", "conversation_hidden", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.String(64), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("type", message_type, nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("image_ref", sa.String(512), nullable=True),
        sa.Column("reply_parent_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_messages_id", "messages", ["id"])
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_reply_parent_id", "messages", ["reply_parent_id"])
    op.create_index("ix_messages_group_created", "messages", ["group_id", "created_at", "id"])
    op.create_index("ix_messages_group_unread", "messages", ["group_id", "read_at"])

    # --- letters ---
    op.create_table(
        "letters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipient_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", letter_status, nullable=False, server_default=sa.text("'scheduled'")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("deliver_at", sa.DateTime(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_letters_id", "letters", ["id"])
    op.create_index("ix_letters_status_deliver_at", "letters", ["status", "deliver_at"])
    op.create_index("ix_letters_recipient_status_created", "letters", ["recipient_id", "status", "created_at"])
    op.create_index("ix_letters_sender_created", "letters", ["sender_id", "created_at"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("subject_ref", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("idempotency_key", sa.String(64), nullable=True),
        sa.UniqueConstraint("idempotency_key", name="uq_notifications_idempotency_key"),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_recipient_created", "notifications", ["recipient_id", "created_at", "id"])
    op.create_index("ix_notifications_recipient_unread", "notifications", ["recipient_id", "read_at"])

    # --- feed ---
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("image_refs", sa.JSON(), nullable=False),
        sa.Column("reactions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comments_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_posts_id", "posts", ["id"])
    op.create_index("ix_posts_user_id", "posts", ["user_id"])

    op.create_table(
        "reactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("emoji", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "post_id", name="uq_reactions_user_post"),
    )
    op.create_index("ix_reactions_id", "reactions", ["id"])
    op.create_index("ix_reactions_post_id", "reactions", ["post_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.String(1000), nullable=False),
        sa.Column("reply_parent_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_comments_id", "comments", ["id"])
    op.create_index("ix_comments_user_id", "comments", ["user_id"])
    op.create_index("ix_comments_reply_parent_id", "comments", ["reply_parent_id"])
    op.create_index("ix_comments_post_created", "comments", ["post_id", "created_at"])


def downgrade() -> None:
    for table in (
        "comments",
        "reactions",
        "posts",
        "notifications",
        "letters",
        "messages",
        "conversation_hidden",
        "conversations",
        "discussion_threads",
        "discussions",
        "community_members",
        "communities",
        "blocked_users",
        "friend_requests",
        "friends",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (notification_type, letter_status, message_type, member_role, community_gender, user_gender):
        enum.drop(bind, checkfirst=True)
