# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import asyncio
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from llmspeed.aggregation import (
    ConfidenceAggregation,
    ConfidenceReport,
    analyze_sweep,
    best_concurrency,
    concurrency_comparison,
    step_performance,
)
from llmspeed.common.config import RunConfiguration
from llmspeed.common.enums import ControllerState, RunMode
from llmspeed.common.models import RunBatch
from llmspeed.controller import (
    CampaignStrategy,
    FixedTrialsStrategy,
    RunController,
    SingleRunStrategy,
    StepSweepStrategy,
)
from llmspeed.engine import ExecutionEngineProtocol, load_engine

logger = logging.getLogger(__name__)


def build_strategy(
    config: RunConfiguration, trials: int = 1, cooldown_seconds: float = 0.0
) -> CampaignStrategy:
    """Pick the campaign strategy for a configuration.

    Step modes sweep their range, more than one trial repeats the
    configuration, anything else is a single run.

    Raises:
        ValueError: If repeated trials are combined with a step mode.
    """
    if config.mode.is_step:
        if trials > 1:
            raise ValueError(
                "Repeated trials (--trials > 1) are not supported with step modes. "
                "Run the sweep once, or use --mode normal for confidence trials."
            )
        return StepSweepStrategy.from_config(config, cooldown_seconds)
    if trials > 1:
        return FixedTrialsStrategy(trials, cooldown_seconds)
    return SingleRunStrategy()


def run_benchmark(
    config: RunConfiguration,
    *,
    engine: ExecutionEngineProtocol | None = None,
    engine_path: str | None = None,
    engine_kwargs: dict[str, Any] | None = None,
    trials: int = 1,
    cooldown_seconds: float = 0.0,
    confidence_level: float = 0.95,
    timeout: float | None = None,
    console: Console | None = None,
) -> list[RunBatch]:
    """Run the configuration against an engine and print the results.

    A step mode runs a sweep, ``trials > 1`` runs repeated trials, otherwise a
    single run. Exits with status 1 when the campaign does not complete.
    """
    strategy = build_strategy(config, trials, cooldown_seconds)
    if engine is None:
        engine = load_engine(engine_path, **(engine_kwargs or {}))
    console = console or Console()

    if isinstance(strategy, SingleRunStrategy):
        return _run_single_benchmark(config, engine, timeout, console)
    return _run_multi_benchmark(
        config, engine, strategy, confidence_level, timeout, console
    )


async def _drive(
    engine: ExecutionEngineProtocol,
    config: RunConfiguration,
    strategy: CampaignStrategy,
    timeout: float | None,
) -> RunController:
    controller = RunController(engine)
    await controller.start_campaign(config, strategy)
    try:
        await controller.wait(timeout)
    except asyncio.TimeoutError:
        logger.error(f"Campaign did not finish within {timeout}s, stopping")
        await controller.stop()
    return controller


def _execute(
    engine: ExecutionEngineProtocol,
    config: RunConfiguration,
    strategy: CampaignStrategy,
    timeout: float | None,
) -> RunController:
    try:
        return asyncio.run(_drive(engine, config, strategy, timeout))
    except Exception:
        logger.exception("Error running benchmark")
        raise


def _run_single_benchmark(
    config: RunConfiguration,
    engine: ExecutionEngineProtocol,
    timeout: float | None,
    console: Console,
) -> list[RunBatch]:
    """Run one batch and print its rounds."""
    logger.info(
        f"Starting benchmark of {config.model}: {config.round_count} round(s) "
        f"x {config.concurrency} concurrent request(s)"
    )
    controller = _execute(engine, config, SingleRunStrategy(), timeout)
    batches = list(controller.current_run_batches)

    if controller.state is not ControllerState.DONE:
        logger.error(f"Benchmark {controller.status_text}")
        sys.exit(1)

    batch = batches[0]
    console.print(_round_table(batch))
    console.print(_batch_table(batches, title="Run summary"))
    return batches


def _run_multi_benchmark(
    config: RunConfiguration,
    engine: ExecutionEngineProtocol,
    strategy: CampaignStrategy,
    confidence_level: float,
    timeout: float | None,
    console: Console,
) -> list[RunBatch]:
    """Run a step sweep or repeated trials, then analyze the campaign."""
    is_sweep = isinstance(strategy, StepSweepStrategy)

    logger.info("=" * 80)
    if is_sweep:
        logger.info("Starting Step Sweep")
        logger.info(f"  Parameter: {strategy.parameter_name} = {strategy.values}")
    else:
        logger.info("Starting Repeated Trials")
        logger.info(f"  Number of trials: {strategy.num_trials}")
        logger.info(f"  Confidence level: {confidence_level:.0%}")
    logger.info(f"  Cooldown between runs: {strategy.get_cooldown_seconds()}s")
    logger.info("=" * 80)

    controller = _execute(engine, config, strategy, timeout)
    batches = list(controller.current_run_batches)
    expected = controller.step_total

    logger.info("=" * 80)
    logger.info(f"All runs complete: {len(batches)}/{expected} finished")
    logger.info("=" * 80)

    if batches:
        console.print(_batch_table(batches, title="Campaign batches"))

    if controller.state is not ControllerState.DONE:
        logger.error(f"Campaign {controller.status_text}")
        sys.exit(1)

    if is_sweep:
        _report_sweep(batches, strategy.mode, console)
        return batches

    successful = [b for b in batches if b.summary.successful_tests > 0]
    if len(successful) < 2:
        logger.error(
            f"Only {len(successful)} successful trial(s) - cannot compute "
            "confidence statistics. At least 2 successful trials are required."
        )
        sys.exit(1)

    report = ConfidenceAggregation(confidence_level=confidence_level).aggregate(
        batches
    )
    console.print(_confidence_table(report))
    return batches


def _report_sweep(batches: list[RunBatch], mode: RunMode, console: Console) -> None:
    points = step_performance(batches, mode)
    if not points:
        logger.warning("No successful requests in the sweep, nothing to analyze")
        return

    axis = "Concurrency" if mode is RunMode.CONCURRENCY_STEP else "Prompt tokens"
    table = Table(title="Step performance")
    table.add_column(axis, justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Single output (tok/s)", justify="right")
    table.add_column("Total output (tok/s)", justify="right")
    table.add_column("Single prefill (tok/s)", justify="right")
    table.add_column("Total prefill (tok/s)", justify="right")
    table.add_column("TTFT (ms)", justify="right")
    for p in points:
        table.add_row(
            str(p.x_value),
            str(p.samples),
            f"{p.avg_single_output:.2f}",
            f"{p.avg_total_output:.2f}",
            f"{p.avg_single_prefill:.2f}",
            f"{p.avg_total_prefill:.2f}",
            f"{p.avg_ttft:.2f}",
        )
    console.print(table)

    analysis = analyze_sweep(points)
    best_configs = analysis["best_configurations"]
    if best_configs:
        logger.info("Best Configurations:")
        for name, best in best_configs.items():
            logger.info(
                f"  {name}: {axis.lower()}={best['value']} "
                f"({best['metric']:.2f} {best['unit']})"
            )
    if analysis["pareto_optimal"]:
        logger.info(f"  Pareto optimal points: {analysis['pareto_optimal']}")
    for metric_key, trend in analysis["trends"].items():
        if trend["inflection_points"]:
            logger.info(
                f"  {metric_key} changes pace at {trend['inflection_points']}"
            )

    if mode is RunMode.CONCURRENCY_STEP:
        best = best_concurrency(concurrency_comparison(batches))
        if best is not None:
            logger.info(
                f"Recommended concurrency: {best.concurrency} "
                f"({best.round_throughput:.2f} tokens/sec, {best.latency:.2f} ms)"
            )


def _round_table(batch: RunBatch) -> Table:
    table = Table(title=f"Rounds of {batch.id}")
    table.add_column("Round", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Prefill (ms)", justify="right")
    table.add_column("Output (ms)", justify="right")
    table.add_column("Total (ms)", justify="right")
    table.add_column("Output (tok/s)", justify="right")
    table.add_column("Total output (tok/s)", justify="right")
    for r in batch.round_summaries or ():
        table.add_row(
            str(r.round_number),
            str(r.total_requests),
            f"{r.success_rate:.1%}",
            f"{r.average_prefill_latency:.2f}",
            f"{r.average_output_latency:.2f}",
            f"{r.average_total_latency:.2f}",
            f"{r.average_output_tokens_per_second:.2f}",
            f"{r.total_output_tokens_per_second:.2f}",
        )
    return table


def _batch_table(batches: list[RunBatch], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Batch")
    table.add_column("Concurrency", justify="right")
    table.add_column("Prompt", justify="right")
    table.add_column("Requests", justify="right")
    table.add_column("Avg latency (ms)", justify="right")
    table.add_column("Avg output (tok/s)", justify="right")
    table.add_column("Round throughput (tok/s)", justify="right")
    table.add_column("Errors", justify="right")
    for b in batches:
        s = b.summary
        table.add_row(
            b.id,
            str(b.configuration.concurrency),
            str(b.configuration.prompt_length),
            f"{s.successful_tests}/{s.total_tests}",
            f"{s.average_latency:.2f}",
            f"{s.average_output_tokens_per_second:.2f}",
            f"{s.average_round_throughput:.2f}",
            f"{s.error_rate:.1%}",
        )
    return table


_KEY_METRICS = (
    "average_latency",
    "average_prefill_latency",
    "average_output_tokens_per_second",
    "average_round_throughput",
    "error_rate",
)


def _confidence_table(report: ConfidenceReport) -> Table:
    confidence_level = report.metadata.get("confidence_level", 0.95)
    table = Table(
        title=(
            f"Confidence across {report.num_successful_runs}/{report.num_runs} "
            f"trials ({confidence_level:.0%} CI)"
        )
    )
    table.add_column("Metric")
    table.add_column("Mean", justify="right")
    table.add_column("Std Dev", justify="right")
    table.add_column("CV", justify="right")
    table.add_column("CI", justify="right")
    table.add_column("Unit")
    for name in _KEY_METRICS:
        metric = report.metrics.get(name)
        if metric is None:
            continue
        table.add_row(
            name.replace("_", " ").title(),
            f"{metric.mean:.4f}",
            f"{metric.std:.4f}",
            f"{metric.cv:.2%}",
            f"[{metric.ci_low:.4f}, {metric.ci_high:.4f}]",
            metric.unit,
        )
    return table
