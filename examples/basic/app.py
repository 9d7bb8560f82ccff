import asyncio
import logging

from sluice import DatabaseConfig, Sluice
from sluice.sql import INTEGER, TEXT, BatchInsertStatement, Column, Table

cities = Table(
    "cities",
    Column("id", INTEGER, auto_increment=True),
    Column("name", TEXT),
    Column("country", TEXT, nullable=True),
)


async def add_cities(transaction):
    insert = BatchInsertStatement(cities)
    rows = (("Lisbon", "PRT"), ("Porto", "PRT"), ("Oslo", None))
    for name, country in rows:
        insert["name"] = name
        insert["country"] = country
        insert.add_batch()
    await transaction.exec(insert)
    return [row["id"] for row in insert.resulted_values]


async def run():
    logging.basicConfig(level=logging.INFO)
    sluice = Sluice()
    await sluice.connect(
        db_path="cities.db",
        config=DatabaseConfig(use_nested_transactions=True, log_sql=True),
    )

    async def setup(transaction):
        await transaction.exec_sql(
            "CREATE TABLE IF NOT EXISTS cities ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "name TEXT NOT NULL, country TEXT)"
        )

    async def work(transaction):
        ids = await sluice.transaction(add_cities)
        print("Inserted", ids)
        return await transaction.exec_sql(
            "SELECT * FROM cities WHERE country = ?", ["PRT"]
        )

    await sluice.transaction(setup)
    print(await sluice.transaction(work))


asyncio.run(run())
