import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Conversation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                ("name", models.CharField(blank=True, default="", max_length=200)),
                ("is_group", models.BooleanField(default=False)),
                ("created_by", models.CharField(max_length=255)),
                ("image_url", models.URLField(blank=True, default="", max_length=500)),
                (
                    "last_message_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Creation time of the newest message (or of the conversation)",
                        null=True,
                    ),
                ),
                ("is_archived", models.BooleanField(default=False)),
                ("is_pinned", models.BooleanField(default=False)),
            ],
            options={
                "db_table": "chat_conversation",
                "ordering": ["-last_message_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "is_deleted",
                    models.BooleanField(
                        db_index=True, default=False, help_text="Whether this record has been soft deleted"
                    ),
                ),
                (
                    "deleted_at",
                    models.DateTimeField(blank=True, help_text="Timestamp when this record was soft deleted", null=True),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                ("sender_id", models.CharField(db_index=True, max_length=255)),
                ("content", models.TextField(blank=True, default="")),
                (
                    "message_type",
                    models.CharField(
                        choices=[
                            ("text", "Text"),
                            ("image", "Image"),
                            ("file", "File"),
                            ("voice", "Voice"),
                            ("video", "Video"),
                            ("location", "Location"),
                            ("system", "System"),
                        ],
                        default="text",
                        max_length=10,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("sending", "Sending"),
                            ("sent", "Sent"),
                            ("delivered", "Delivered"),
                            ("read", "Read"),
                            ("failed", "Failed"),
                        ],
                        default="sent",
                        max_length=10,
                    ),
                ),
                ("attachments", models.JSONField(blank=True, default=list)),
                ("edited_at", models.DateTimeField(blank=True, null=True)),
                (
                    "conversation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.conversation",
                    ),
                ),
                (
                    "forwarded_from",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="forwards",
                        to="chat.message",
                    ),
                ),
                (
                    "reply_to",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replies",
                        to="chat.message",
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["conversation", "created_at"], name="chat_msg_conv_created_idx"),
                ],
            },
        ),
        migrations.AddField(
            model_name="conversation",
            name="last_message",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="chat.message",
            ),
        ),
        migrations.CreateModel(
            name="DirectConversationPair",
            fields=[
                (
                    "conversation",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="direct_pair",
                        serialize=False,
                        to="chat.conversation",
                    ),
                ),
                ("user_low", models.CharField(max_length=255)),
                ("user_high", models.CharField(max_length=255)),
            ],
            options={
                "db_table": "chat_direct_conversation_pair",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user_low", "user_high"), name="unique_direct_conversation_pair"
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("user_low__lt", models.F("user_high"))),
                        name="direct_pair_user_low_lt_user_high",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ConversationMember",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                ("user_id", models.CharField(db_index=True, max_length=255)),
                (
                    "role",
                    models.CharField(
                        choices=[("admin", "Admin"), ("member", "Member")], default="member", max_length=10
                    ),
                ),
                ("joined_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_read_at", models.DateTimeField(blank=True, null=True)),
                ("is_muted", models.BooleanField(default=False)),
                ("is_pinned", models.BooleanField(default=False)),
                (
                    "conversation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="members",
                        to="chat.conversation",
                    ),
                ),
                (
                    "last_read_message",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="chat.message",
                    ),
                ),
            ],
            options={
                "db_table": "chat_conversation_member",
                "ordering": ["joined_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("conversation", "user_id"), name="unique_conversation_member"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MessageReaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                ("user_id", models.CharField(max_length=255)),
                ("emoji", models.CharField(max_length=32)),
                (
                    "message",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reactions",
                        to="chat.message",
                    ),
                ),
            ],
            options={
                "db_table": "chat_message_reaction",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(fields=("message", "user_id"), name="unique_reaction_per_user"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TypingIndicator",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("user_id", models.CharField(max_length=255)),
                ("timestamp", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "conversation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="typing_indicators",
                        to="chat.conversation",
                    ),
                ),
            ],
            options={
                "db_table": "chat_typing_indicator",
                "constraints": [
                    models.UniqueConstraint(fields=("conversation", "user_id"), name="unique_typing_indicator"),
                ],
            },
        ),
    ]
