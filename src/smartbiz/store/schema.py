from __future__ import annotations

# Run once in the Supabase SQL editor. user_id defaults to the caller, and
# the policies keep every row private to its owner.
SETUP_SQL = """
create extension if not exists "pgcrypto";

-- 1) Inventory
create table if not exists public.products (
  id                  uuid primary key default gen_random_uuid(),
  user_id             uuid not null default auth.uid() references auth.users(id) on delete cascade,
  name                text not null,
  category            text not null default '',
  stock               integer not null default 0 check (stock >= 0),
  cost_price          numeric not null default 0,
  selling_price       numeric not null default 0,
  unit                text not null default 'pcs',
  low_stock_threshold integer not null default 5,
  created_at          timestamptz not null default now()
);

-- 2) Sales and expenses
create table if not exists public.transactions (
  id          uuid primary key default gen_random_uuid(),
  user_id     uuid not null default auth.uid() references auth.users(id) on delete cascade,
  type        text not null check (type in ('SALE','EXPENSE')),
  amount      numeric not null,
  date        timestamptz not null default now(),
  description text not null default '',
  items       jsonb,                      -- [{productId, quantity, name}]
  created_at  timestamptz not null default now()
);

create index if not exists idx_products_user_name on public.products(user_id, name);
create index if not exists idx_transactions_user_date on public.transactions(user_id, date desc);

-- 3) Row-level security
alter table public.products enable row level security;
alter table public.transactions enable row level security;

drop policy if exists "products are private" on public.products;
create policy "products are private" on public.products
  for all using (auth.uid() = user_id) with check (auth.uid() = user_id);

drop policy if exists "transactions are private" on public.transactions;
create policy "transactions are private" on public.transactions
  for all using (auth.uid() = user_id) with check (auth.uid() = user_id);
"""

SETUP_MESSAGE = (
    "Database setup required: the products/transactions tables have not been created yet. "
    "Run the SQL printed by `smartbiz schema` in your Supabase SQL editor, then retry."
)
