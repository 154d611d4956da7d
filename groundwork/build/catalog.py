# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
"""
The recipes of the tools groundwork knows how to install.
"""
from __future__ import annotations

from .common.recipes import RecipeRegistry
from .common.steps import Run, Symlink, configure_make

GNU = "https://ftp.gnu.org/gnu"
GNU_MIRROR = "https://ftpmirror.gnu.org"

registry = RecipeRegistry()


registry.add(
    "perl",
    version="5.36.0",
    url="https://www.cpan.org/src/5.0/perl-{version}.tar.xz",
    mirror="https://cpan.metacpan.org/src/5.0/perl-{version}.tar.xz",
    checksum="0f386dccbee8e26286404b2cca144e1005be65477979beb9b1ba272d4819bcf0",
    build=(
        Run("./Configure", "-des", "-Dprefix={prefix}", "-Dcc={cc}"),
        Run("make", "-j{jobs}"),
        Run("make", "install"),
    ),
    description="The Perl 5 language interpreter",
)

registry.add(
    "gm4",
    version="1.4.19",
    url=f"{GNU}/m4/m4-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/m4/m4-{{version}}.tar.xz",
    checksum="63aede5c6d33b6d9b13511cd0be2cac046f2e70fd0a07aa9573a04a82783af96",
    build=configure_make(),
    post_install=(Symlink("m4", "bin/gm4"),),
    description="GNU m4 macro processor",
)

registry.add(
    "autoconf",
    version="2.72",
    url=f"{GNU}/autoconf/autoconf-{{version}}.tar.gz",
    mirror=f"{GNU_MIRROR}/autoconf/autoconf-{{version}}.tar.gz",
    checksum="afb181a76e1ee72832f6581c0eddf8df032b83e2e0239ef79ebedc4467d92d6e",
    dependencies=["gm4", "perl"],
    build=configure_make(),
    description="Generator of configure scripts",
)

registry.add(
    "automake",
    version="1.16.5",
    url=f"{GNU}/automake/automake-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/automake/automake-{{version}}.tar.xz",
    checksum="f01d58cd6d9d77fbdca9eb4bbd5ead1988228fdb73d6f7a201f5f8d6b118b469",
    dependencies=["perl", "gm4", "autoconf"],
    build=configure_make(),
    description="Generator of Makefile.in files",
)

registry.add(
    "libtool",
    version="2.4.7",
    url=f"{GNU}/libtool/libtool-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/libtool/libtool-{{version}}.tar.xz",
    checksum="4f7f217f057ce655ff22559ad221a0fd8ef84ad1fc5fcb6990cecc333aa1635d",
    dependencies=["gm4"],
    build=configure_make(),
    description="Generic library support script",
)

registry.add(
    "pkg-config",
    version="0.29.2",
    url="https://pkgconfig.freedesktop.org/releases/pkg-config-{version}.tar.gz",
    mirror="https://distfiles.macports.org/pkgconfig/pkg-config-{version}.tar.gz",
    checksum="6fc69c01688c9458a57eb9a1664c9aba372ccda420a02bf4429fe610e7e7d591",
    build=configure_make("--with-internal-glib", "--disable-host-tool"),
    description="Helper tool for compiling against installed libraries",
)

registry.add(
    "gmake",
    version="4.4.1",
    url=f"{GNU}/make/make-{{version}}.tar.gz",
    mirror=f"{GNU_MIRROR}/make/make-{{version}}.tar.gz",
    checksum="dd16fb1d67bfab79a72f5e8390735c49e3e8e70b4945a15ab1f81ddb78658fb3",
    build=configure_make("--without-guile"),
    post_install=(Symlink("make", "bin/gmake"),),
    description="GNU make",
)

registry.add(
    "help2man",
    version="1.49.3",
    url=f"{GNU}/help2man/help2man-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/help2man/help2man-{{version}}.tar.xz",
    checksum="4d7e4fdef2eca6afe07a2682151cea78781e0a4e8f9622142d9f70c083a2fd4f",
    dependencies=["perl"],
    build=configure_make(),
    description="Generator of manual pages from --help output",
)

registry.add(
    "texinfo",
    version="7.1",
    url=f"{GNU}/texinfo/texinfo-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/texinfo/texinfo-{{version}}.tar.xz",
    checksum="deeec9f19f159e046fdf8ad22231981806dac332cc372f1c763504ad82b30953",
    dependencies=["perl"],
    build=configure_make(),
    description="GNU documentation system",
)

registry.add(
    "patch",
    version="2.7.6",
    url=f"{GNU}/patch/patch-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/patch/patch-{{version}}.tar.xz",
    checksum="ac610bda97abe0d9f6b7c963255a11dcb196c25e337c61f94e4778d632f1d8fd",
    build=configure_make(),
    description="GNU patch",
)

registry.add(
    "diffutils",
    version="3.10",
    url=f"{GNU}/diffutils/diffutils-{{version}}.tar.xz",
    mirror=f"{GNU_MIRROR}/diffutils/diffutils-{{version}}.tar.xz",
    checksum="90e5e93cc724e4ebe12ede80df1634063c7a855692685919bfe60b556c9bd09e",
    build=configure_make(),
    description="GNU diff, cmp, diff3 and sdiff",
)

registry.validate()
