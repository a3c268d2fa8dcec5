import asyncio
import logging
from datetime import datetime
from pathlib import Path

import click

from config.constants import InterestType, RecurrenceType
from config.settings import EXCEL_FILE, LOG_FORMAT, LOG_LEVEL, ON_TRACK_THRESHOLD
from core.comparison import compare_plans, summarize_plan
from core.errors import PlanningError
from core.inflation import to_real_terms
from core.planner import PlanCoordinator
from core.projection import breakdowns_to_frame, project_plan_frame
from data_manager.excel_handler import get_all_config, get_config, save_expense, set_config
from data_manager.expense_source import ExcelExpenseSource
from data_manager.plan_store import PlanStore
from data_manager.schema import FinancialPlan, apply_edit
from utils.formatters import fmt_amount, fmt_months, fmt_percent, fmt_rate
from utils.id_generator import generate_expense_id

logger = logging.getLogger(__name__)


def _run(coro):
    try:
        return asyncio.run(coro)
    except PlanningError as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_day(value: str):
    return datetime.strptime(value, '%Y-%m-%d').date()


def _plan_options(func):
    options = [
        click.option('--name', type=str, required=True, help='Plan name'),
        click.option('--start-date', type=str, required=True, help='Start date (YYYY-MM-DD)'),
        click.option('--months', type=int, required=True, help='Duration in months'),
        click.option('--income', type=float, required=True, help='Monthly income'),
        click.option('--expenses', type=float, default=0.0, help='Manual monthly expenses'),
        click.option('--use-app-expenses', is_flag=True, help='Derive expenses from recorded expenses'),
        click.option('--inflation', is_flag=True, help='Apply inflation at the configured default rate'),
        click.option('--inflation-rate', type=float, help='Monthly inflation rate as a fraction (enables inflation)'),
        click.option('--interest', is_flag=True, help='Apply interest at the configured default rate'),
        click.option('--interest-rate', type=float, help='Monthly interest rate as a fraction (enables interest)'),
        click.option('--interest-type', type=click.Choice([e.value for e in InterestType]),
                     default=InterestType.COMPOUND.value, help='Interest type'),
        click.option('--currency', type=str, help='Plan currency (defaults to the configured currency)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _configured_rate(ctx, key: str, given):
    if given is not None:
        return given
    value = get_config(key, ctx.obj['data_file'])
    return float(value) if value is not None else None


def _plan_parameters(ctx, name, start_date, months, income, expenses, use_app_expenses,
                     inflation, inflation_rate, interest, interest_rate, interest_type, currency) -> dict:
    if inflation:
        inflation_rate = _configured_rate(ctx, 'inflation_rate', inflation_rate)
    if interest:
        interest_rate = _configured_rate(ctx, 'interest_rate', interest_rate)
    return {
        'name': name,
        'start_date': _parse_day(start_date),
        'duration_in_months': months,
        'monthly_income': income,
        'manual_monthly_expenses': expenses,
        'use_app_expense_data': use_app_expenses,
        'is_inflation_applied': inflation or inflation_rate is not None,
        'inflation_rate': inflation_rate,
        'is_interest_applied': interest or interest_rate is not None,
        'interest_rate': interest_rate,
        'interest_type': interest_type,
        'default_currency': currency or get_config('default_currency', ctx.obj['data_file']) or 'USD',
    }


def _print_breakdowns(plan: FinancialPlan, frame, real: bool = False):
    if real and plan.inflation_applies():
        frame = to_real_terms(frame, plan.inflation_rate)
    columns = [c for c in frame.columns if c not in ('breakdown_id', 'plan_id')]
    click.echo(frame[columns].to_string(index=False))


@click.group()
@click.option('--data-file', type=click.Path(dir_okay=False, path_type=Path), default=EXCEL_FILE,
              show_default=True, help='Workbook holding plans and expenses')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), default=LOG_LEVEL)
@click.pass_context
def cli(ctx, data_file, log_level):
    """A CLI for financial plan projections."""
    logging.basicConfig(level=getattr(logging, log_level), format=LOG_FORMAT)
    ctx.ensure_object(dict)
    ctx.obj['data_file'] = data_file
    threshold = get_config('on_track_threshold', data_file)
    ctx.obj['coordinator'] = PlanCoordinator(
        PlanStore(data_file),
        expense_source=ExcelExpenseSource(data_file),
        on_track_threshold=float(threshold) if threshold is not None else ON_TRACK_THRESHOLD,
    )


@cli.command('create-plan')
@_plan_options
@click.pass_context
def create_plan(ctx, **options):
    """Creates a plan and stores its monthly breakdown."""
    pwb = _run(ctx.obj['coordinator'].create_plan(**_plan_parameters(ctx, **options)))
    click.echo(f"Plan '{pwb.plan.name}' created with ID '{pwb.plan.id}'.")
    click.echo(f"Final cumulative net: {fmt_amount(pwb.final_cumulative_net(), pwb.plan.default_currency)}")


@cli.command('preview')
@_plan_options
@click.option('--real', is_flag=True, help='Also show amounts in month-0 purchasing power')
@click.pass_context
def preview(ctx, real, **options):
    """Projects a plan without saving it."""
    try:
        plan = PlanCoordinator.build_plan(_plan_parameters(ctx, **options))
        figures = None
        if plan.use_app_expense_data:
            figures = ExcelExpenseSource(ctx.obj['data_file']).figures_for_plan(plan)
    except PlanningError as exc:
        raise click.ClickException(str(exc)) from exc
    _print_breakdowns(plan, project_plan_frame(plan, figures), real)


@cli.command('list-plans')
@click.pass_context
def list_plans(ctx):
    """Lists all plans, most recently updated first."""
    plans = _run(ctx.obj['coordinator'].list_plans())
    if not plans:
        click.echo("No plans found.")
        return
    for plan in plans:
        click.echo(
            f"{plan.id}  {plan.name}  {plan.start_date:%Y-%m-%d}  {fmt_months(plan.duration_in_months)}  "
            f"{fmt_amount(plan.monthly_income, plan.default_currency)}/month  [{plan.status().label}]"
        )


@cli.command('show-plan')
@click.option('--plan-id', type=str, required=True, help='Plan ID')
@click.option('--real', is_flag=True, help='Also show amounts in month-0 purchasing power')
@click.pass_context
def show_plan(ctx, plan_id, real):
    """Shows a plan's monthly breakdown and current position."""
    coordinator = ctx.obj['coordinator']
    pwb = _run(coordinator.select_plan(plan_id))
    plan = pwb.plan
    _print_breakdowns(plan, breakdowns_to_frame(plan, pwb.breakdowns), real)

    summary = summarize_plan(pwb)
    click.echo(f"\nExpected income: {fmt_amount(plan.total_expected_income(), plan.default_currency)}")
    if plan.inflation_applies():
        click.echo(f"Inflation: {fmt_rate(plan.inflation_rate)}")
    if plan.is_interest_applied:
        click.echo(f"Interest: {fmt_rate(plan.interest_rate)} ({plan.interest_type.label})")
    click.echo(f"Total interest: {fmt_amount(summary['total_interest'], plan.default_currency)}")
    click.echo(f"Final cumulative net: {fmt_amount(summary['final_cumulative_net'], plan.default_currency)}")

    position = coordinator.current_position
    if position is not None:
        click.echo(f"Month {position.current_month_index + 1} of {plan.duration_in_months} "
                   f"({fmt_percent(position.progress)})")
        click.echo(f"Expected: {fmt_amount(position.expected_cumulative_net)}  "
                   f"Actual: {fmt_amount(position.actual_cumulative_net)}  "
                   f"{'on track' if position.is_on_track else 'behind plan'}")


@cli.command('delete-plan')
@click.option('--plan-id', type=str, required=True, help='Plan ID')
@click.pass_context
def delete_plan_command(ctx, plan_id):
    """Deletes a plan and its monthly breakdown."""
    _run(ctx.obj['coordinator'].delete_plan(plan_id))
    click.echo(f"Plan with ID '{plan_id}' deleted successfully.")


@cli.command('edit-month')
@click.option('--plan-id', type=str, required=True, help='Plan ID')
@click.option('--month', 'month_index', type=int, required=True, help='Zero-based month index')
@click.option('--income', type=float, help='Projected income')
@click.option('--fixed', type=float, help='Fixed expenses')
@click.option('--average', type=float, help='Average expenses')
@click.option('--total', type=float, help='Total projected expenses')
@click.option('--net', type=float, help='Net amount override')
@click.pass_context
def edit_month(ctx, plan_id, month_index, income, fixed, average, total, net):
    """Overrides one month and recalculates every later month."""
    changes = {
        key: value for key, value in {
            'projected_income': income,
            'fixed_expenses': fixed,
            'average_expenses': average,
            'total_projected_expenses': total,
            'net_amount': net,
        }.items() if value is not None
    }
    if not changes:
        raise click.UsageError("Nothing to change.")

    coordinator = ctx.obj['coordinator']
    pwb = _run(coordinator.select_plan(plan_id))
    breakdown = pwb.breakdown_for(month_index)
    if breakdown is None:
        raise click.ClickException(f"Plan '{plan_id}' has no month {month_index}.")
    pwb = _run(coordinator.update_breakdown(apply_edit(breakdown, **changes)))
    click.echo(f"Month {month_index} updated. Final cumulative net: "
               f"{fmt_amount(pwb.final_cumulative_net(), pwb.plan.default_currency)}")


@cli.command('refresh-expenses')
@click.option('--plan-id', type=str, required=True, help='Plan ID')
@click.pass_context
def refresh_expenses(ctx, plan_id):
    """Re-derives upcoming months from recorded expenses."""
    pwb = _run(ctx.obj['coordinator'].refresh_expense_data(plan_id))
    click.echo(f"Plan '{pwb.plan.name}' refreshed. Final cumulative net: "
               f"{fmt_amount(pwb.final_cumulative_net(), pwb.plan.default_currency)}")


@cli.command('add-expense')
@click.option('--date', 'expense_date', type=str, required=True, help='Expense date (YYYY-MM-DD)')
@click.option('--amount', type=float, required=True, help='Amount')
@click.option('--currency', type=str, required=True, help='Currency code')
@click.option('--recurrence', type=click.Choice([e.value for e in RecurrenceType]),
              default=RecurrenceType.NONE.value, help='Recurrence type')
@click.option('--category', type=str, default='', help='Category')
@click.option('--description', type=str, default='', help='Description')
@click.pass_context
def add_expense(ctx, expense_date, amount, currency, recurrence, category, description):
    """Records an expense used by expense-driven plans."""
    if amount < 0:
        raise click.BadParameter("Amount must not be negative.", param_hint='--amount')
    record = {
        'expense_id': generate_expense_id(),
        'expense_date': _parse_day(expense_date).isoformat(),
        'amount': amount,
        'currency': currency.upper(),
        'recurrence_type': recurrence,
        'category': category,
        'description': description,
    }
    save_expense(record, ctx.obj['data_file'])
    logger.info("Recorded expense %s (%s %s)", record["expense_id"], amount, record["currency"])
    click.echo(f"Expense '{record['expense_id']}' recorded.")


@cli.command('compare-plans')
@click.argument('plan_ids', nargs=-1)
@click.pass_context
def compare_plans_command(ctx, plan_ids):
    """Compares multiple plans."""
    if len(plan_ids) < 2:
        click.echo("Please provide at least two plan IDs to compare.")
        return
    coordinator = ctx.obj['coordinator']
    plans = [_run(coordinator.select_plan(plan_id)) for plan_id in plan_ids]
    click.echo("--- Key Metrics Comparison ---")
    click.echo(compare_plans(plans).to_string(index=False))


@cli.command('list-configs')
@click.pass_context
def list_configs(ctx):
    """Lists all system configurations."""
    click.echo(get_all_config(ctx.obj['data_file']).to_string())


@cli.command('get-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.pass_context
def get_config_command(ctx, key):
    """Gets a system configuration by its key."""
    value = get_config(key, ctx.obj['data_file'])
    if value is not None:
        click.echo(value)
    else:
        click.echo(f"Config with key '{key}' not found.")


@cli.command('set-config')
@click.option('--key', type=str, required=True, help='Config key')
@click.option('--value', type=str, required=True, help='Config value')
@click.option('--description', type=str, default='', help='Description')
@click.pass_context
def set_config_command(ctx, key, value, description):
    """Sets a system configuration."""
    set_config(key, value, description, ctx.obj['data_file'])
    click.echo(f"Config with key '{key}' set successfully.")


if __name__ == "__main__":
    cli()
