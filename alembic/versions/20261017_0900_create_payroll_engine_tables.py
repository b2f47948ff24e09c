"""Create payroll engine tables

Revision ID: 20261017_0900
Revises:
Create Date: 2026-10-17 09:00:00.000000

This migration creates the payroll engine schema:
- employees: Employee master data (read-only to the engine)
- salary_structures: Reusable compensation templates
- employee_salary_assignments: Dated compensation history per employee
- payroll_runs: Versioned payroll batches with aggregate totals
- payroll_items: One payslip per employee per run
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON


# revision identifiers, used by Alembic.
revision = '20261017_0900'
down_revision = None
branch_labels = None
depends_on = None


EMPLOYMENT_STATUS = sa.Enum(
    'ACTIVE', 'ON_LEAVE', 'SUSPENDED', 'TERMINATED', 'RESIGNED', 'RETIRED',
    name='employmentstatus',
)
PENSION_FUND_ADMINISTRATOR = sa.Enum(
    'ARM', 'AXA_MANSARD', 'CRUSADER', 'FCMB', 'FIDELITY', 'LEADWAY', 'NLPC', 'NPF',
    'OAK', 'PAL', 'PREMIUM', 'STANBIC_IBTC', 'TANGERINE', 'TRUSTFUND', 'VERITAS', 'OTHER',
    name='pensionfundadministrator',
)
PAYROLL_RUN_STATUS = sa.Enum(
    'DRAFT', 'PROCESSING', 'PENDING_APPROVAL', 'APPROVED', 'PAID', 'CANCELLED',
    name='payrollrunstatus',
)
PAYROLL_ITEM_STATUS = sa.Enum('COMPUTED', 'FAILED', 'EXCLUDED', name='payrollitemstatus')


def table_exists(table_name: str) -> bool:
    """Check if a table exists."""
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return table_name in inspector.get_table_names()


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def money(name: str, nullable: bool = False, precision: int = 15):
    if nullable:
        return sa.Column(name, sa.Numeric(precision, 2), nullable=True)
    return sa.Column(name, sa.Numeric(precision, 2), server_default='0', nullable=False)


def upgrade() -> None:
    # ===========================================
    # EMPLOYEES TABLE
    # ===========================================
    if not table_exists('employees'):
        op.create_table('employees',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),

            # Identification
            sa.Column('staff_number', sa.String(50), nullable=False, comment='Internal employee ID/staff number'),
            sa.Column('first_name', sa.String(100), nullable=False),
            sa.Column('middle_name', sa.String(100), nullable=True),
            sa.Column('last_name', sa.String(100), nullable=False),

            # Employment
            sa.Column('employment_status', EMPLOYMENT_STATUS, nullable=False),
            sa.Column('hire_date', sa.Date, nullable=False),
            sa.Column('termination_date', sa.Date, nullable=True),

            # Tax & pension
            sa.Column('tin', sa.String(20), nullable=True, comment='Tax Identification Number'),
            sa.Column('pension_pin', sa.String(30), nullable=True, comment='RSA PIN (Retirement Savings Account)'),
            sa.Column('pfa', PENSION_FUND_ADMINISTRATOR, nullable=True),

            # Bank details
            sa.Column('bank_name', sa.String(100), nullable=True),
            sa.Column('account_number', sa.String(10), nullable=True, comment='NUBAN account number'),
            sa.Column('account_name', sa.String(200), nullable=True),

            *timestamps(),
            sa.UniqueConstraint('tenant_id', 'staff_number', name='uq_employee_tenant_staff_number'),
        )

    # ===========================================
    # SALARY STRUCTURES TABLE
    # ===========================================
    if not table_exists('salary_structures'):
        op.create_table('salary_structures',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('name', sa.String(100), nullable=False),
            sa.Column('description', sa.Text, nullable=True),
            sa.Column('effective_date', sa.Date, nullable=False),

            money('basic_salary'),
            money('housing_allowance'),
            money('transport_allowance'),
            money('meal_allowance'),
            money('utility_allowance'),
            sa.Column('other_allowances', JSON, nullable=True),

            sa.Column('paye_applicable', sa.Boolean, server_default=sa.true(), nullable=False),
            sa.Column('pension_applicable', sa.Boolean, server_default=sa.true(), nullable=False),
            sa.Column('nhf_applicable', sa.Boolean, server_default=sa.true(), nullable=False),
            sa.Column('is_active', sa.Boolean, server_default=sa.true(), nullable=False),

            *timestamps(),
            sa.UniqueConstraint('tenant_id', 'name', name='uq_salary_structure_tenant_name'),
        )

    # ===========================================
    # EMPLOYEE SALARY ASSIGNMENTS TABLE
    # ===========================================
    if not table_exists('employee_salary_assignments'):
        op.create_table('employee_salary_assignments',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('salary_structure_id', UUID(as_uuid=True), sa.ForeignKey('salary_structures.id', ondelete='RESTRICT'), nullable=True),
            sa.Column('effective_from', sa.Date, nullable=False),
            sa.Column('effective_to', sa.Date, nullable=True, comment='Exclusive end; NULL while the assignment is open-ended'),

            # Overrides (NULL falls back to the structure)
            money('basic_salary', nullable=True),
            money('housing_allowance', nullable=True),
            money('transport_allowance', nullable=True),
            money('meal_allowance', nullable=True),
            money('utility_allowance', nullable=True),
            sa.Column('other_allowances', JSON, nullable=True),
            sa.Column('paye_applicable', sa.Boolean, nullable=True),
            sa.Column('pension_applicable', sa.Boolean, nullable=True),
            sa.Column('nhf_applicable', sa.Boolean, nullable=True),
            sa.Column('other_deductions', JSON, nullable=True),

            sa.Column('notes', sa.Text, nullable=True),
            sa.Column('created_by_id', UUID(as_uuid=True), nullable=True),

            *timestamps(),
            sa.CheckConstraint(
                'effective_to IS NULL OR effective_to > effective_from',
                name='ck_employee_salary_assignments_assignment_interval_not_empty',
            ),
        )

    # ===========================================
    # PAYROLL RUNS TABLE
    # ===========================================
    if not table_exists('payroll_runs'):
        op.create_table('payroll_runs',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('tenant_id', UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('period_start', sa.Date, nullable=False),
            sa.Column('period_end', sa.Date, nullable=False),
            sa.Column('status', PAYROLL_RUN_STATUS, nullable=False, index=True),
            sa.Column('version', sa.Integer, nullable=False, server_default='1'),

            # Totals
            sa.Column('employee_count', sa.Integer, server_default='0', nullable=False),
            sa.Column('failed_count', sa.Integer, server_default='0', nullable=False),
            money('total_gross', precision=18),
            money('total_paye', precision=18),
            money('total_pension_employee', precision=18),
            money('total_nhf', precision=18),
            money('total_other_deductions', precision=18),
            money('total_deductions', precision=18),
            money('total_net', precision=18),
            money('total_pension_employer', precision=18),
            money('total_employer_contributions', precision=18),

            # Workflow
            sa.Column('created_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('processed_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('approved_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('paid_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancelled_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('notes', sa.Text, nullable=True),

            *timestamps(),
            sa.CheckConstraint('period_end >= period_start', name='ck_payroll_runs_run_period_valid'),
        )

    # ===========================================
    # PAYROLL ITEMS TABLE
    # ===========================================
    if not table_exists('payroll_items'):
        op.create_table('payroll_items',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('payroll_run_id', UUID(as_uuid=True), sa.ForeignKey('payroll_runs.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('employee_id', UUID(as_uuid=True), sa.ForeignKey('employees.id', ondelete='RESTRICT'), nullable=False, index=True),
            sa.Column('status', PAYROLL_ITEM_STATUS, nullable=False),
            sa.Column('failure_reason', sa.Text, nullable=True),
            sa.Column('failed_component', sa.String(50), nullable=True),
            sa.Column('acknowledged_by_id', UUID(as_uuid=True), nullable=True),
            sa.Column('acknowledged_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('acknowledgement_reason', sa.Text, nullable=True),

            # Snapshot of employee details at computation time
            sa.Column('employee_name', sa.String(300), nullable=False),
            sa.Column('staff_number', sa.String(50), nullable=False),
            sa.Column('bank_name', sa.String(100), nullable=True),
            sa.Column('account_number', sa.String(10), nullable=True),
            sa.Column('account_name', sa.String(200), nullable=True),
            sa.Column('pension_pin', sa.String(30), nullable=True),
            sa.Column('pfa', sa.String(50), nullable=True),
            sa.Column('tin', sa.String(20), nullable=True),

            # Earnings
            money('basic_salary'),
            money('housing_allowance'),
            money('transport_allowance'),
            money('meal_allowance'),
            money('utility_allowance'),
            sa.Column('other_allowances', JSON, nullable=True),
            money('gross_pay'),

            # Deductions
            money('paye_tax'),
            money('pension_employee'),
            money('nhf'),
            sa.Column('other_deductions', JSON, nullable=True),
            money('other_deductions_total'),
            money('total_deductions'),
            money('net_pay'),

            # Employer contribution & annual tax basis
            money('pension_employer'),
            money('consolidated_relief'),
            money('taxable_income'),
            money('annual_tax'),
            sa.Column('tax_calculation', JSON, nullable=True),

            sa.Column('computed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),

            *timestamps(),
            sa.UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_item_run_employee'),
        )


def downgrade() -> None:
    op.drop_table('payroll_items')
    op.drop_table('payroll_runs')
    op.drop_table('employee_salary_assignments')
    op.drop_table('salary_structures')
    op.drop_table('employees')

    bind = op.get_bind()
    for enum in (PAYROLL_ITEM_STATUS, PAYROLL_RUN_STATUS, PENSION_FUND_ADMINISTRATOR, EMPLOYMENT_STATUS):
        enum.drop(bind, checkfirst=True)
