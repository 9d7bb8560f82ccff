from logging import Logger

from sluice.transaction.transaction import Transaction

COLUMN_SIZE = 8
SQL_WIDTH = 60


def _shorten(sql: str) -> str:
    sql = " ".join(sql.split())
    if len(sql) > SQL_WIDTH:
        sql = sql[: SQL_WIDTH - 3] + "..."
    return sql


def log_statistics_report(logger: Logger, transaction: Transaction) -> None:
    """Log per statement counts and timings collected while
    ``transaction.debug`` was on"""
    if not transaction.statement_stats:
        logger.warning(
            "No statement statistics found for transaction %s",
            transaction.id,
        )
        return

    stats = sorted(
        transaction.statement_stats.items(),
        key=lambda item: item[1][1],
        reverse=True,
    )
    queries = [_shorten(sql) for sql, _ in stats]
    width = max(map(len, queries + ["TOTALS"]))
    headers = " | ".join(
        [
            "SQL".ljust(width),
            "COUNT".rjust(COLUMN_SIZE),
            "MS".rjust(COLUMN_SIZE),
        ]
    )
    row_data = [
        " | ".join(
            [
                query.ljust(width),
                str(executions).rjust(COLUMN_SIZE),
                f"{total * 1000:.1f}".rjust(COLUMN_SIZE),
            ]
        )
        for query, (_, (executions, total)) in zip(queries, stats)
    ]
    rows = "\n".join(row_data)
    divider = "=" * len(headers)
    totals = " | ".join(
        [
            "TOTALS".ljust(width),
            str(transaction.statement_count).rjust(COLUMN_SIZE),
            f"{transaction.duration * 1000:.1f}".rjust(COLUMN_SIZE),
        ]
    )
    title = f"TRANSACTION {transaction.id}".center(len(divider))

    logger.info(
        f"SQL Statistics Report\n\n{title}\n\n{headers}\n"
        f"{rows}\n{divider}\n{totals}\n\n"
    )
