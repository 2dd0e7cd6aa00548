import pytest

from local_store import LocalStore
from stocks import StockBook


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "local.json")


def test_years_are_kept_sorted_and_unique(store) -> None:
    book = StockBook(store)
    book.add_year("2025")
    book.add_year(" 2023 ")

    assert book.years == ["2023", "2025"]
    with pytest.raises(ValueError, match="Year already exists"):
        book.add_year("2025")
    with pytest.raises(ValueError, match="Year is required"):
        book.add_year("  ")


def test_stock_names_are_unique_per_year(store) -> None:
    book = StockBook(store)
    book.add_year("2024")
    book.add_year("2025")
    book.add_stock("ACME", "2024")
    book.add_stock("ACME", "2025")

    with pytest.raises(ValueError, match="already exists"):
        book.add_stock("ACME", "2025")
    with pytest.raises(ValueError, match="Year not found"):
        book.add_stock("ACME", "1999")


def test_values_and_totals(store) -> None:
    book = StockBook(store)
    book.add_year("2025")
    acme = book.add_stock("ACME", "2025")
    globex = book.add_stock("Globex", "2025")

    assert book.set_value(acme.id, "March", "1200.5") == 1200.5
    book.set_value(globex.id, "March", "300 shares")
    book.set_value(globex.id, "April", "abc")

    assert book.month_total("2025", "March") == 1500.5
    totals = book.year_totals("2025")
    assert totals["April"] == 0
    assert len(totals) == 12

    with pytest.raises(ValueError):
        book.set_value(acme.id, "Marchember", "1")


def test_deleting_a_year_drops_its_stocks(store) -> None:
    book = StockBook(store)
    book.add_year("2024")
    book.add_year("2025")
    book.add_stock("ACME", "2024")
    kept = book.add_stock("ACME", "2025")

    book.delete_year("2024")

    assert book.years == ["2025"]
    assert [s.id for s in book.stocks] == [kept.id]
    with pytest.raises(ValueError, match="Year not found"):
        book.delete_year("2024")


def test_book_is_persisted_in_the_local_store(store) -> None:
    book = StockBook(store)
    book.add_year("2025")
    stock = book.add_stock("ACME", "2025")
    book.set_value(stock.id, "June", "99")

    reloaded = StockBook(LocalStore(store.path))

    assert reloaded.years == ["2025"]
    (restored,) = reloaded.stocks_for_year("2025")
    assert restored.name == "ACME"
    assert restored.months["June"] == 99


def test_corrupt_store_reads_as_empty(tmp_path) -> None:
    path = tmp_path / "local.json"
    path.write_text("{not json", encoding="utf-8")

    book = StockBook(LocalStore(path))

    assert book.years == []
    assert book.stocks == []
