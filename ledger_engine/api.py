"""
Ledger Reporting API

FastAPI service over a SnapshotStore: account listings, balance trees,
validation errors and whole-ledger replacement from a JSON document.
"""

from datetime import date
from pathlib import Path
from typing import List, Optional
import logging

import uvicorn
from fastapi import FastAPI, HTTPException, Depends, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as SchemaValidationError

from . import __version__
from .config import LedgerConfig, get_config
from .directives import Directive
from .errors import LedgerError, StructuralError
from .logging_config import setup_logging, log_action
from .schemas import AccountResponse, BalanceTreeResponse, DirectiveDocument, RebuildResponse
from .snapshots import LedgerSnapshot, SnapshotStore

logger = logging.getLogger("ledger_engine.api")


def load_directive_file(path: str) -> List[Directive]:
    """
    Load directives from a JSON directive document

    Raises:
        OSError: If the file cannot be read
        ValueError: If the document is not a valid directive document
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        document = DirectiveDocument.model_validate_json(text)
    except SchemaValidationError as e:
        raise ValueError(f"Invalid directive document {path}: {e}") from e
    return document.to_directives()


def get_store(request: Request) -> SnapshotStore:
    return request.app.state.store


def get_snapshot(store: SnapshotStore = Depends(get_store)) -> LedgerSnapshot:
    return store.current()


def parse_query_date(value: Optional[str], name: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"invalid {name} format (expected YYYY-MM-DD): {value}")


def create_app(store: Optional[SnapshotStore] = None,
               config: Optional[LedgerConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = config or get_config()
    if store is None:
        store = SnapshotStore(config.to_ledger_options(), read_only=config.read_only)
        if config.directives_file:
            store.rebuild(load_directive_file(config.directives_file))

    app = FastAPI(
        title="Ledger Engine API",
        description="Validated double-entry ledger state and balance reports",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.store = store

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(snapshot: LedgerSnapshot = Depends(get_snapshot)):
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "ledger_engine_api",
            "version": __version__,
            "snapshot": snapshot.version,
        }

    @app.get("/api/accounts", response_model=List[AccountResponse])
    async def list_accounts(snapshot: LedgerSnapshot = Depends(get_snapshot)):
        """List every opened account, sorted by name"""
        accounts = snapshot.ledger.accounts()
        return [accounts[name].to_dict() for name in sorted(accounts)]

    @app.get("/api/balances", response_model=BalanceTreeResponse)
    async def get_balances(
        types: Optional[str] = Query(None, description="Comma separated account types"),
        start_date: Optional[str] = Query(None, alias="startDate"),
        end_date: Optional[str] = Query(None, alias="endDate"),
        snapshot: LedgerSnapshot = Depends(get_snapshot)
    ):
        """Balance tree: trial balance, balance sheet or income statement"""
        ledger = snapshot.ledger

        account_types = []
        if types:
            for name in types.split(","):
                account_type, found = ledger.account_type_from_name(name.strip())
                if not found:
                    raise HTTPException(status_code=400, detail=f"invalid account type: {name}")
                account_types.append(account_type)

        start = parse_query_date(start_date, "startDate")
        end = parse_query_date(end_date, "endDate")

        try:
            tree = ledger.balance_tree(account_types, start, end)
        except (LedgerError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))

        return BalanceTreeResponse.from_tree(tree)

    @app.get("/api/errors")
    async def list_errors(snapshot: LedgerSnapshot = Depends(get_snapshot)):
        """Validation errors of the published ledger"""
        return {
            "version": snapshot.version,
            "count": len(snapshot.errors),
            "errors": [error.to_dict() for error in snapshot.errors],
        }

    @app.put("/api/directives", response_model=RebuildResponse)
    async def replace_directives(
        document: DirectiveDocument,
        store: SnapshotStore = Depends(get_store)
    ):
        """Replace the whole ledger and publish a new snapshot"""
        if store.read_only:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Ledger is read-only")

        try:
            directives = document.to_directives()
            snapshot = store.rebuild(directives)
        except (StructuralError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))

        log_action(
            logger, "info", "Ledger replaced through API",
            action="replace_directives", resource=f"snapshot:{snapshot.version}"
        )
        return RebuildResponse(
            version=snapshot.version,
            directives=snapshot.directive_count,
            accounts=len(snapshot.ledger.accounts()),
            errors=[error.to_dict() for error in snapshot.errors],
        )

    return app


def run_server(host: str = "0.0.0.0", port: int = 8080, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    uvicorn.run(
        "ledger_engine.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level=config.log_level.lower()
    )
