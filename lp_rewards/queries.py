# GraphQL queries for the GEB subgraph
#
# Paginated queries take %(first)d and %(skip)d, event queries select the
# blocks after the snapshot block up to the campaign end block.

LP_TOKEN_LABEL = "UNISWAP_POOL_TOKEN_COIN"
COLLATERAL_TYPE = "ETH-A"

SAFE_MODIFICATIONS_QUERY = """
    query {
        modifySAFECollateralizations(
            where: {createdAtBlock_gt: %(start)d, createdAtBlock_lte: %(end)d, deltaDebt_not: 0}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            id
            deltaDebt
            safe {
                owner {
                    address
                }
            }
            createdAt
        }
    }
"""

LP_TRANSFERS_QUERY = """
    query {
        erc20Transfers(
            where: {createdAtBlock_gt: %(start)d, createdAtBlock_lte: %(end)d, label: "%(label)s"}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            id
            source
            destination
            amount
            createdAt
        }
    }
"""

POOL_SYNCS_QUERY = """
    query {
        uniswapSyncs(
            where: {createdAtBlock_gt: %(start)d, createdAtBlock_lte: %(end)d}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            id
            reserve0
            createdAt
        }
    }
"""

ACCUMULATED_RATE_UPDATES_QUERY = """
    query {
        updateAccumulatedRates(
            where: {createdAtBlock_gt: %(start)d, createdAtBlock_lte: %(end)d}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            id
            rateMultiplier
            createdAt
        }
    }
"""

SAFE_DEBTS_QUERY = """
    query {
        safes(
            where: {debt_gt: 0}
            block: {number: %(block)d}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            debt
            owner {
                address
            }
        }
    }
"""

LP_BALANCES_QUERY = """
    query {
        erc20Balances(
            where: {label: "%(label)s", balance_gt: 0}
            block: {number: %(block)d}
            orderBy: id
            first: %(first)d
            skip: %(skip)d
        ) {
            balance
            address
        }
    }
"""

POOL_STATE_QUERY = """
    query {
        systemState(id: "current", block: {number: %(block)d}) {
            coinUniswapPair {
                reserve0
                totalSupply
            }
        }
    }
"""

ACCUMULATED_RATE_QUERY = """
    query {
        collateralType(id: "%(collateral)s", block: {number: %(block)d}) {
            accumulatedRate
        }
    }
"""
