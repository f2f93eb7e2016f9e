from sqlalchemy import BigInteger, Integer, Numeric

# Use BigInteger by default, with a SQLite-safe Integer variant for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

# Monetary amounts: two decimal places, returned as ``Decimal``.
MONEY_TYPE = Numeric(18, 2)
