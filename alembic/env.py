from logging.config import fileConfig
from alembic import context
from sqlalchemy import engine_from_config, pool
import os
from taxintake.db.session import Base

# import models
from taxintake.models.firm import Firm
from taxintake.models.client import Client
from taxintake.models.filing import Filing
from taxintake.models.form_field import FormField
from taxintake.models.form_answer import FormAnswer
from taxintake.models.pdf_field_mapping import PdfFieldMapping
from taxintake.models.client_invite import ClientInvite
from taxintake.models.attachment import Attachment

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata

def get_url():
    return os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")

def run_migrations_offline():
    context.configure(url=get_url(), target_metadata=target_metadata, literal_binds=True, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()

def run_migrations_online():
    cfg = config.get_section(config.config_ini_section) or {}
    cfg["sqlalchemy.url"] = get_url()
    connectable = engine_from_config(cfg, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
