"""add clause grounding tables

Revision ID: c4e7a91d2b60
Revises:
Create Date: 2026-10-17 09:12:41.203118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'c4e7a91d2b60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('claims_analyses',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('org_id', sa.UUID(), nullable=False),
    sa.Column('state_code', sa.String(length=16), nullable=True),
    sa.Column('form_version_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment='Form version ids used as source material'),
    sa.Column('scenario', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('output_markdown', sa.Text(), nullable=False),
    sa.Column('structured_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column('citations', postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment='Legacy form-level citations recorded with the analysis'),
    sa.Column('grounded_fields', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='ClauseGroundedFields blob, replaced as a whole on every grounding'),
    sa.Column('grounded_revision', sa.Integer(), server_default='0', nullable=False, comment='Bumped on every write of grounded_fields'),
    sa.Column('grounded_at', sa.TIMESTAMP(timezone=True), nullable=True),
    sa.Column('created_by', sa.String(), nullable=True),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_claims_analyses_org_id'), 'claims_analyses', ['org_id'], unique=False)

    op.create_table('form_versions',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('org_id', sa.UUID(), nullable=False),
    sa.Column('form_id', sa.UUID(), nullable=False),
    sa.Column('form_number', sa.String(), nullable=False),
    sa.Column('form_title', sa.String(), nullable=False),
    sa.Column('edition_date', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('jurisdictions', postgresql.JSONB(astext_type=sa.Text()), nullable=False, comment="State codes or names the form applies in; 'ALL' for countrywide"),
    sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default='NOW()', nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_form_versions_org_id'), 'form_versions', ['org_id'], unique=False)

    op.create_table('form_ingestion_sections',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('form_version_id', sa.UUID(), nullable=False),
    sa.Column('order', sa.Integer(), nullable=False),
    sa.Column('heading', sa.Text(), nullable=False),
    sa.Column('path', sa.Text(), nullable=False),
    sa.Column('section_type', sa.String(length=50), nullable=True),
    sa.ForeignKeyConstraint(['form_version_id'], ['form_versions.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('form_version_id', 'order', name='uq_section_order')
    )

    op.create_table('form_ingestion_chunks',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('form_version_id', sa.UUID(), nullable=False),
    sa.Column('chunk_index', sa.Integer(), nullable=False),
    sa.Column('text', sa.Text(), nullable=False),
    sa.Column('section_id', sa.UUID(), nullable=True),
    sa.Column('page_start', sa.Integer(), nullable=True),
    sa.ForeignKeyConstraint(['form_version_id'], ['form_versions.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['section_id'], ['form_ingestion_sections.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('form_version_id', 'chunk_index', name='uq_chunk_index')
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('form_ingestion_chunks')
    op.drop_table('form_ingestion_sections')
    op.drop_index(op.f('ix_form_versions_org_id'), table_name='form_versions')
    op.drop_table('form_versions')
    op.drop_index(op.f('ix_claims_analyses_org_id'), table_name='claims_analyses')
    op.drop_table('claims_analyses')
