import logging

import requests
from gql import Client, gql
from gql.transport.exceptions import TransportError
from gql.transport.requests import RequestsHTTPTransport
from graphql import GraphQLError

from lp_rewards.errors import SubgraphError

LOG = logging.getLogger(__name__)

# Largest page a subgraph serves
PAGE_SIZE = 1000


class SubgraphClient:
    def __init__(self, url, page_size=PAGE_SIZE, client=None):
        self.url = url
        self.page_size = page_size
        if client is None:
            transport = RequestsHTTPTransport(url=url)
            client = Client(transport=transport, fetch_schema_from_transport=False)
        self.client = client

    def query(self, query):
        try:
            result = self.client.execute(gql(query))
        except (TransportError, GraphQLError, requests.RequestException) as e:
            raise SubgraphError(f"Error with subgraph query on {self.url}: {e}\n{query}") from e

        if not result:
            raise SubgraphError(f"No data returned by {self.url} for:\n{query}")
        return result

    def query_paginated(self, query, field, **params):
        """Fetch every page of ``field``, the query must take %(first)d and %(skip)d."""
        rows = []
        skip = 0
        while True:
            data = self.query(query % dict(params, first=self.page_size, skip=skip))
            page = data.get(field)
            if page is None:
                raise SubgraphError(f"Field {field} missing from subgraph response")
            rows.extend(page)
            if len(page) < self.page_size:
                break
            skip += self.page_size
        LOG.debug(f"Fetched {len(rows)} {field}")
        return rows
